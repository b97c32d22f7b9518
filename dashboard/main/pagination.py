"""
List state for the resource tables.

The page index is 0-based, matching the upstream API. Every change of
page, limit or search produces a new query string, and so a new cache key.
"""
import logging
import math
from dataclasses import dataclass, replace
from urllib.parse import urlencode

from django.conf import settings
from pydantic import ValidationError

from .schemas import parse_response

logger = logging.getLogger(__name__)


def _to_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ListParams:
    page: int = 0
    limit: int = 10
    search: str = ""

    @classmethod
    def from_data(cls, data):
        """Read params from a QueryDict (``request.GET`` or ``request.POST``)."""
        page = max(_to_int(data.get("page"), 0), 0)
        limit = _to_int(data.get("limit"), settings.LIST_DEFAULT_LIMIT)
        if limit not in settings.LIST_PAGE_SIZES:
            limit = settings.LIST_DEFAULT_LIMIT
        search = (data.get("search") or "").strip()
        return cls(page=page, limit=limit, search=search)

    def as_dict(self):
        params = {"page": self.page, "limit": self.limit}
        if self.search:
            params["search"] = self.search
        return params

    def query_string(self):
        return "?" + urlencode(self.as_dict())

    def with_changes(self, **changes):
        # A new search always starts from the first page
        if "search" in changes and changes["search"] != self.search:
            changes.setdefault("page", 0)
        return replace(self, **changes)

    def url(self, base, **extra):
        """``base`` with these params plus any extra query arguments."""
        params = self.as_dict()
        params.update({k: v for k, v in extra.items() if v not in (None, "")})
        return f"{base}?{urlencode(params)}"


class Pager:
    """Rows of one page plus the navigation derived from the response meta."""

    def __init__(self, base_url, params, items=None, meta=None):
        self.base_url = base_url
        self.params = params
        self.items = items or []
        self.total_items = meta.total_items if meta else len(self.items)
        if meta and meta.total_pages:
            self.total_pages = meta.total_pages
        else:
            self.total_pages = math.ceil(self.total_items / params.limit) if self.total_items else 0

    @property
    def has_previous(self):
        return self.params.page > 0

    @property
    def has_next(self):
        return self.params.page + 1 < self.total_pages

    @property
    def previous_url(self):
        return self.params.with_changes(page=self.params.page - 1).url(self.base_url)

    @property
    def next_url(self):
        return self.params.with_changes(page=self.params.page + 1).url(self.base_url)

    @property
    def range_label(self):
        if not self.total_items:
            return "0–0 of 0"
        start = self.params.page * self.params.limit + 1
        end = min(start + self.params.limit - 1, self.total_items)
        return f"{start}–{end} of {self.total_items}"

    def page_size_links(self):
        return [
            (size, self.params.with_changes(limit=size, page=0).url(self.base_url), size == self.params.limit)
            for size in settings.LIST_PAGE_SIZES
        ]


def pager_from_query(query, record_type, base_url, params):
    """Pager for a list Query; empty when the query failed or returned an unexpected shape"""
    if not query.is_success or query.data is None:
        return Pager(base_url, params)

    try:
        response = parse_response(query.data, list[record_type])
    except ValidationError as e:
        logger.warning(f"Unexpected list payload from {query.url}: {str(e)}")
        return Pager(base_url, params)

    return Pager(base_url, params, response.result, response.meta)
