from django.conf import settings


def dashboard(request):
    return {
        'search_debounce_ms': settings.SEARCH_DEBOUNCE_MS,
        'is_authenticated': bool(request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE)),
    }
