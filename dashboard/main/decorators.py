from functools import wraps

from django.conf import settings
from django.contrib import messages
from django.shortcuts import redirect
from django.urls import reverse
from django.utils.http import urlencode

from .api import SessionExpired
from .auth import clear_session_cookies


def login_redirect(request):
    login_url = reverse(settings.LOGIN_URL)
    return redirect(f"{login_url}?{urlencode({'next': request.get_full_path()})}")


def token_required(view_func):
    """Decorator sending visitors without an upstream token to the login page"""

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE):
            return login_redirect(request)

        try:
            return view_func(request, *args, **kwargs)
        except SessionExpired:
            messages.error(request, 'Your session has expired. Please log in again.')
            return clear_session_cookies(login_redirect(request))

    return wrapper
