"""
Client for the upstream REST API.

Pages never call ``requests`` directly: ``ApiClient.use_api`` turns a GET into
a cached ``Query`` and any other verb into a ``Mutation`` that, once it
succeeds, invalidates the queries it affects.
"""
import hashlib
import logging
from collections import namedtuple

import requests
from django.conf import settings

from .query_cache import QueryCache

logger = logging.getLogger(__name__)

MUTATION_METHODS = ("POST", "PUT", "PATCH", "DELETE")

# Form fields and files sent as multipart/form-data
MultipartPayload = namedtuple("MultipartPayload", ["fields", "files"])


class ApiError(Exception):
    """An upstream call failed, either in transport or with a non-2xx status."""

    def __init__(self, message, status=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    def __str__(self):
        return self.message


class SessionExpired(ApiError):
    """The upstream rejected the access token."""


def url_to_query_key(url):
    """Split ``/path?query`` into the cache key ``[path, query]``."""
    pathname, _, search = url.partition("?")
    return [pathname, search] if search else [pathname]


def as_query_key(key):
    """A single path string is a one-segment key."""
    if isinstance(key, str):
        return [key]
    return list(key)


def upstream_url(url):
    """Resolve an app-relative ``/v1/...`` URL against the upstream host."""
    if url.startswith(("http://", "https://")):
        return url
    prefix = settings.UPSTREAM_PROXY_PREFIX
    if url == prefix or url.startswith(prefix + "/"):
        url = url[len(prefix):]
    return settings.UPSTREAM_API_URL + url


def token_namespace(token):
    if not token:
        return "anonymous"
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def error_from_response(response):
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        message = payload["message"]
    if not message:
        message = f"Request failed with status code {response.status_code}"

    error_class = SessionExpired if response.status_code == 401 else ApiError
    return error_class(message, status=response.status_code, payload=payload)


class ApiClient:
    """Upstream client bound to one caller's access token."""

    def __init__(self, token=None, focus_refetch=False, query_cache=None):
        self.token = token
        self.focus_refetch = focus_refetch
        self.cache = query_cache or QueryCache(namespace=token_namespace(token))

    @classmethod
    def from_request(cls, request):
        return cls(
            token=request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE),
            focus_refetch=request.GET.get("refetch") == "focus",
        )

    def headers(self):
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send(self, method, url, payload=None):
        """Perform one request and return the decoded body; raises ApiError."""
        kwargs = {"headers": self.headers(), "timeout": settings.UPSTREAM_TIMEOUT}
        if isinstance(payload, MultipartPayload):
            # (None, value) parts keep the body multipart even without files
            parts = [(name, (None, value)) for name, value in payload.fields.items()]
            parts.extend(payload.files.items())
            kwargs["files"] = parts
        elif payload is not None:
            kwargs["json"] = payload

        try:
            response = requests.request(method, upstream_url(url), **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {str(e)}")
            raise ApiError(str(e)) from e

        if not response.ok:
            error = error_from_response(response)
            logger.info(f"{method} {url} returned {response.status_code}: {error}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def fetch_file(self, url):
        """Download a stored object, returning ``(content, content_type)``."""
        try:
            response = requests.get(upstream_url(url), headers=self.headers(),
                                    timeout=settings.UPSTREAM_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise ApiError(str(e)) from e
        if not response.ok:
            raise error_from_response(response)
        return response.content, response.headers.get("Content-Type", "")

    def use_api(self, url, method="GET", body=None, query_key=None, invalidates=(),
                enabled=True, refetch_on_window_focus=False, stale_time=None,
                on_success=None, on_error=None):
        """
        Build a Query (GET) or a Mutation (POST/PUT/PATCH/DELETE) for ``url``.

        ``query_key`` overrides the key derived from the URL. For mutations
        it is the key invalidated on success, together with every key listed
        in ``invalidates``.
        """
        method = method.upper()
        key = as_query_key(query_key) if query_key else url_to_query_key(url)

        if method == "GET":
            return Query(
                self, url, key,
                enabled=enabled,
                stale_time=stale_time,
                force_refetch=refetch_on_window_focus and self.focus_refetch,
            )

        if method not in MUTATION_METHODS:
            raise ValueError(f"Unsupported method: {method}")

        return Mutation(
            self, url, method, key,
            body=body,
            invalidates=invalidates,
            on_success=on_success,
            on_error=on_error,
        )


class Query:
    """Cached result of a GET, fetched on construction unless disabled."""

    def __init__(self, client, url, key, enabled=True, stale_time=None, force_refetch=False):
        self.client = client
        self.url = url
        self.key = key
        self.enabled = enabled
        self.stale_time = settings.QUERY_STALE_TIME if stale_time is None else stale_time
        self.status = "pending"
        self.data = None
        self.error = None
        self.is_fetching = False

        if enabled:
            self._load(force_refetch)

    @property
    def is_pending(self):
        return self.status == "pending"

    @property
    def is_success(self):
        return self.status == "success"

    @property
    def is_error(self):
        return self.status == "error"

    def _load(self, force_refetch):
        if not force_refetch:
            entry = self.client.cache.get(self.key, self.stale_time)
            if entry is not None:
                self.data = entry["data"]
                self.status = "success"
                return
        self.refetch()

    def refetch(self):
        self.is_fetching = True
        try:
            data = self.client.send("GET", self.url)
        except ApiError as e:
            self.error = e
            self.status = "error"
            if isinstance(e, SessionExpired):
                raise
        else:
            self.client.cache.set(self.key, data)
            self.data = data
            self.error = None
            self.status = "success"
        finally:
            self.is_fetching = False
        return self.data


class Mutation:
    """A write against the upstream, triggered on demand with ``mutate``."""

    def __init__(self, client, url, method, key, body=None, invalidates=(),
                 on_success=None, on_error=None):
        self.client = client
        self.url = url
        self.method = method
        self.key = key
        self.body = body
        self.invalidates = [as_query_key(k) for k in invalidates]
        self.on_success = on_success
        self.on_error = on_error
        self.status = "idle"
        self.data = None
        self.error = None

    @property
    def is_pending(self):
        return self.status == "pending"

    @property
    def is_success(self):
        return self.status == "success"

    @property
    def is_error(self):
        return self.status == "error"

    def mutate(self, variables=None):
        """
        Send ``variables`` (or the body given at setup) and run the callbacks.

        Returns the decoded response, or None when the call failed; the
        failure itself is handed to ``on_error`` and kept on ``self.error``.
        """
        payload = self.body if variables is None else variables
        if self.method == "DELETE":
            payload = None

        self.status = "pending"
        try:
            data = self.client.send(self.method, self.url, payload)
        except ApiError as e:
            self.error = e
            if self.on_error:
                self.on_error(e)
            self.status = "error"
            if isinstance(e, SessionExpired):
                raise
            return None

        self.data = data
        self.error = None
        if self.on_success:
            self.on_success(data)
        self._invalidate()
        self.status = "success"
        return data

    def _invalidate(self):
        keys = []
        for key in [self.key] + self.invalidates:
            if key not in keys:
                keys.append(key)
        for key in keys:
            self.client.cache.invalidate(key)
        return keys
