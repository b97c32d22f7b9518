import json
import logging

import requests
from django.conf import settings
from django.contrib import messages
from django.http import HttpResponse, JsonResponse
from django.http.multipartparser import MultiPartParserError
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from .auth import LoginFailed, clear_session_cookies, set_session_cookies, upstream_login
from .forms import LoginForm

logger = logging.getLogger(__name__)

# Headers describing the upstream connection rather than the payload
HOP_BY_HOP_HEADERS = {
    'connection', 'keep-alive', 'proxy-authenticate', 'proxy-authorization',
    'te', 'trailers', 'transfer-encoding', 'upgrade', 'content-encoding', 'content-length',
}


def safe_next_url(request, candidate):
    if candidate and url_has_allowed_host_and_scheme(
        candidate, allowed_hosts={request.get_host()}, require_https=request.is_secure()
    ):
        return candidate
    return reverse(settings.LOGIN_REDIRECT_URL)


# ==================== Authentication Views ====================

def user_login(request):
    """Login page: exchanges email/password for upstream tokens"""
    next_url = safe_next_url(request, request.POST.get('next') or request.GET.get('next'))

    if request.method == 'POST':
        form = LoginForm(request.POST)
        if form.is_valid():
            try:
                _, result = upstream_login(form.cleaned_data)
            except LoginFailed:
                messages.error(request, "Login failed. Check your email and password.")
            else:
                name = result.user.name if result.user else form.cleaned_data['email']
                messages.success(request, f"Welcome back, {name}!")
                return set_session_cookies(redirect(next_url), result.token)
    else:
        form = LoginForm()

    return render(request, 'main/login.html', {'form': form, 'next': next_url})


@require_POST
def logout_view(request):
    messages.info(request, "You have been logged out.")
    return clear_session_cookies(redirect('user_login'))


@csrf_exempt
@require_POST
def api_login(request):
    """Proxy credentials to the auth service and keep the tokens as cookies"""
    try:
        credentials = json.loads(request.body)
    except ValueError:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)
    if not isinstance(credentials, dict):
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    try:
        body, result = upstream_login(credentials)
    except LoginFailed as e:
        return JsonResponse({'error': e.message}, status=e.status)

    return set_session_cookies(JsonResponse(body), result.token)


# ==================== Placeholder & Proxy Routes ====================

@csrf_exempt
@require_http_methods(['GET', 'POST'])
def api_data(request):
    """Static echo payload; the body is a JSON-encoded string"""
    if request.method == 'POST':
        try:
            request.POST
        except MultiPartParserError as e:
            return JsonResponse(json.dumps({'message': str(e)}), status=400, safe=False)

    return JsonResponse(json.dumps({'data': 'data'}), status=200, safe=False)


@csrf_exempt
def upstream_proxy(request, path):
    """Forward /v1/<path> to the upstream host, as the edge rewrite does"""
    url = f"{settings.UPSTREAM_API_URL}/{path}"
    if request.META.get('QUERY_STRING'):
        url += '?' + request.META['QUERY_STRING']

    headers = {}
    if request.META.get('CONTENT_TYPE'):
        headers['Content-Type'] = request.META['CONTENT_TYPE']
    if request.headers.get('Authorization'):
        headers['Authorization'] = request.headers['Authorization']
    elif request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE):
        headers['Authorization'] = f"Bearer {request.COOKIES[settings.ACCESS_TOKEN_COOKIE]}"

    try:
        upstream = requests.request(
            request.method,
            url,
            data=request.body or None,
            headers=headers,
            timeout=settings.UPSTREAM_TIMEOUT,
            allow_redirects=False,
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"Proxy {request.method} /v1/{path} failed: {str(e)}")
        return JsonResponse({'error': 'Upstream unavailable'}, status=502)

    response = HttpResponse(upstream.content, status=upstream.status_code)
    for name, value in upstream.headers.items():
        if name.lower() not in HOP_BY_HOP_HEADERS:
            response[name] = value
    return response
