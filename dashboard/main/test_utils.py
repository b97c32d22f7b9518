"""
Test utilities: canned upstream responses and a stub routing requests to them
"""
import json

import requests
from django.core.files.uploadedfile import SimpleUploadedFile

UPSTREAM = 'https://upstream.test'
TOKEN = 'test-token'

PNG_BYTES = b'\x89PNG\r\n\x1a\nfake-image'


def fake_response(status=200, body=None, content=None, headers=None):
    """Build a real ``requests.Response`` without touching the network"""
    response = requests.Response()
    response.status_code = status
    response.reason = 'OK' if status < 400 else 'Error'
    response.url = UPSTREAM
    if body is not None:
        response._content = json.dumps(body).encode()
        response.headers['Content-Type'] = 'application/json'
    else:
        response._content = content or b''
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


def envelope(result, meta=None, status=200, message='OK'):
    """Wrap a result the way the upstream API does"""
    body = {
        'timestamp': '2024-01-01T00:00:00Z',
        'status': status,
        'message': message,
        'result': result,
    }
    if meta is not None:
        body['meta'] = meta
    return body


def list_meta(total_items, limit=10, page=0):
    pages = -(-total_items // limit) if total_items else 0
    return {
        'itemsPerPage': limit,
        'totalItems': total_items,
        'currentPage': page,
        'totalPages': pages,
    }


def png_upload(name='photo.png', content=PNG_BYTES):
    return SimpleUploadedFile(name, content, content_type='image/png')


class UpstreamStub:
    """
    Stand-in for ``requests.request`` answering from a route table.

    Routes map ``(method, path)`` to a response; unknown routes answer 404.
    Every call is recorded in ``calls`` as ``(method, path, kwargs)``.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def __call__(self, method, url, **kwargs):
        path = url[len(UPSTREAM):] if url.startswith(UPSTREAM) else url
        self.calls.append((method, path, kwargs))
        response = self.routes.get((method, path))
        if response is None:
            return fake_response(404, {'message': 'Not found'})
        return response

    def calls_to(self, method, path):
        return [kwargs for m, p, kwargs in self.calls if m == method and p == path]
