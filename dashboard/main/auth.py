"""
Session establishment against the upstream auth service.

The access and refresh tokens returned by ``/api/auth/login`` are kept in
two cookies; every other request authenticates with the access token.
"""
import logging

import requests
from django.conf import settings
from pydantic import ValidationError

from .schemas import LoginResult, parse_response

logger = logging.getLogger(__name__)

LOGIN_PATH = '/api/auth/login'


class LoginFailed(Exception):
    def __init__(self, status, message='Login failed'):
        super().__init__(message)
        self.status = status
        self.message = message


def upstream_login(credentials):
    """
    Forward credentials to the auth service.

    Returns ``(body, login_result)``; raises LoginFailed carrying the status
    to answer with when the upstream refuses or cannot be reached.
    """
    try:
        response = requests.post(
            settings.UPSTREAM_API_URL + LOGIN_PATH,
            json=credentials,
            headers={'Content-Type': 'application/json'},
            timeout=settings.UPSTREAM_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"Login request failed: {str(e)}")
        raise LoginFailed(502) from e

    if not response.ok:
        logger.info(f"Upstream login rejected with status {response.status_code}")
        raise LoginFailed(response.status_code)

    try:
        body = response.json()
        result = parse_response(body, LoginResult).result
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unexpected login response: {str(e)}")
        raise LoginFailed(502) from e

    return body, result


def set_session_cookies(response, token):
    for name, value in (
        (settings.ACCESS_TOKEN_COOKIE, token.access_token),
        (settings.REFRESH_TOKEN_COOKIE, token.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            max_age=settings.AUTH_COOKIE_MAX_AGE,
            path='/',
            secure=settings.AUTH_COOKIE_SECURE,
            samesite='Lax',
        )
    return response


def clear_session_cookies(response):
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE, path='/', samesite='Lax')
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE, path='/', samesite='Lax')
    return response
