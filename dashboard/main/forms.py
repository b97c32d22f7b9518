from django import forms
from django.conf import settings
from django.core.exceptions import ValidationError

from .api import MultipartPayload

IMAGE_REQUIRED_MESSAGE = "Image is required"
IMAGE_SIZE_MESSAGE = "Max image size is 2MB."
IMAGE_TYPE_MESSAGE = "Only .jpg, .jpeg, .png and .webp formats are supported."


def validate_image_size(file):
    if file.size > settings.MAX_IMAGE_SIZE:
        raise ValidationError(IMAGE_SIZE_MESSAGE)


def validate_image_type(file):
    if getattr(file, 'content_type', None) not in settings.ACCEPTED_IMAGE_TYPES:
        raise ValidationError(IMAGE_TYPE_MESSAGE)


def image_field(**kwargs):
    """File field accepting a single jpeg/png/webp image of at most 2MB"""
    return forms.FileField(
        validators=[validate_image_size, validate_image_type],
        error_messages={'required': IMAGE_REQUIRED_MESSAGE},
        widget=forms.FileInput(attrs={
            'class': 'form-control',
            'accept': ','.join(settings.ACCEPTED_IMAGE_TYPES),
            'data-image-preview': 'true',
        }),
        **kwargs
    )


class LoginForm(forms.Form):
    """Login form exchanged for upstream tokens"""
    email = forms.EmailField(
        label='Email',
        widget=forms.EmailInput(attrs={
            'class': 'form-control',
            'placeholder': 'Enter email'
        })
    )
    password = forms.CharField(
        label='Password',
        max_length=100,
        widget=forms.PasswordInput(attrs={
            'class': 'form-control',
            'placeholder': 'Enter password'
        })
    )


class ResourceForm(forms.Form):
    """
    Base for the create/edit forms of upstream resources.

    Subclasses declare ``tracked_fields`` (fields whose content marks the
    form dirty) and ``api_names`` (form field name -> payload key).
    """

    tracked_fields = ()
    api_names = {}

    def __init__(self, *args, populated=False, **kwargs):
        super().__init__(*args, **kwargs)
        # Edit forms start dirty once filled from the stored record
        self.populated = populated
        for name in self.tracked_fields:
            self.fields[name].widget.attrs['data-track-dirty'] = 'true'

    def is_dirty(self):
        if self.populated:
            return True
        if not self.is_bound:
            return False
        return any(self.data.get(name) not in (None, '') for name in self.tracked_fields)

    def to_payload(self, exclude=()):
        """Copy every cleaned field into a multipart body, attaching the image file"""
        fields, files = {}, {}
        for name in self.fields:
            if name in exclude:
                continue
            value = self.cleaned_data.get(name)
            key = self.api_names.get(name, name)
            if isinstance(self.fields[name], forms.FileField):
                if value:
                    value.seek(0)
                    files[key] = (value.name, value.read(), value.content_type)
            else:
                fields[key] = '' if value is None else str(value)
        return MultipartPayload(fields, files)

    def seeded_file_errors(self, name, file):
        """Validate a file fetched from storage the same way a fresh upload is"""
        if file is None:
            return []
        try:
            self.fields[name].clean(file)
        except ValidationError as e:
            return e.messages
        return []
