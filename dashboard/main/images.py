"""
Stored images: URLs under the storage proxy and re-materialising a stored
image as an uploaded file so edit forms treat it like a fresh selection.
"""
import logging
import posixpath

from django.core.files.uploadedfile import SimpleUploadedFile

from .api import ApiError

logger = logging.getLogger(__name__)

STORAGE_PATH = '/v1/storage/'


def storage_url(ref):
    """Storage-relative URL of an image reference"""
    if not ref:
        return ''
    return STORAGE_PATH + ref.lstrip('/')


def mime_type_for(ref):
    """``image/<extension>`` of a reference, e.g. ``a/b.PNG`` -> ``image/png``"""
    extension = ref.rsplit('.', 1)[-1].lower() if '.' in ref else ''
    return 'image/' + extension


def seed_image(client, ref):
    """Fetch a stored image and wrap it as an uploaded file, or None"""
    if not ref:
        return None

    try:
        content, _ = client.fetch_file(storage_url(ref))
    except ApiError as e:
        logger.warning(f"Could not fetch stored image {ref}: {str(e)}")
        return None

    return SimpleUploadedFile(posixpath.basename(ref), content, content_type=mime_type_for(ref))
