"""
Cursor pagination. ``limit`` and ``offset`` are encoded in a single ``cursor``
query parameter, e.g. ``?cursor=limit%3D20%26offset%3D40``
"""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from rest_framework.utils.urls import replace_query_param

CURSOR_QUERY_PARAM = "cursor"
DEFAULT_LIMIT = 20
DEFAULT_OFFSET = 0


def _get_query_param(url: str, param: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get(param)
    return values[0] if values else None


def _to_positive_int(value: Any, default: int, strict: bool) -> int:
    """
    :param strict: If ``True`` zero is not valid
    :return: ``value`` as an integer, or ``default`` if it is not a valid positive one
    """
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 0 or (strict and number == 0):
        return default
    return number


@dataclass(frozen=True)
class PaginationData:
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET

    @classmethod
    def from_limit_and_offset(cls, limit: Any, offset: Any) -> "PaginationData":
        """
        Missing, non numeric or negative values fall back to the defaults
        """
        return cls(
            limit=_to_positive_int(limit, DEFAULT_LIMIT, strict=True),
            offset=_to_positive_int(offset, DEFAULT_OFFSET, strict=False),
        )

    @classmethod
    def from_cursor(cls, url: str) -> "PaginationData":
        cursor = _get_query_param(url, CURSOR_QUERY_PARAM)
        if not cursor:
            return cls()
        params = parse_qs(cursor)
        return cls.from_limit_and_offset(
            params.get("limit", [None])[0], params.get("offset", [None])[0]
        )

    def to_cursor(self) -> str:
        return urlencode({"limit": self.limit, "offset": self.offset})

    def to_url(self, url: str) -> str:
        return replace_query_param(url, CURSOR_QUERY_PARAM, self.to_cursor())


def build_next_page_url(url: str, items_count: Optional[int]) -> Optional[str]:
    """
    :param url: Current page url
    :param items_count: Total number of items
    :return: Url for the next page, ``None`` if current page is the last one
    """
    pagination = PaginationData.from_cursor(url)
    if items_count is None or pagination.limit + pagination.offset >= items_count:
        return None
    return PaginationData(
        pagination.limit, pagination.offset + pagination.limit
    ).to_url(url)


def build_previous_page_url(url: str) -> Optional[str]:
    pagination = PaginationData.from_cursor(url)
    if pagination.offset == 0:
        return None
    return PaginationData(
        pagination.limit, max(0, pagination.offset - pagination.limit)
    ).to_url(url)


def cursor_url_from_limit_and_offset(
    url: str, upstream_url: Optional[str]
) -> Optional[str]:
    """
    :param url: Url to add the cursor to
    :param upstream_url: Url with ``limit`` and ``offset`` query params, like the
        ones returned by the Transaction Service
    :return: ``url`` with the cursor for ``upstream_url`` pagination
    """
    if not upstream_url:
        return None
    pagination = PaginationData.from_limit_and_offset(
        _get_query_param(upstream_url, "limit"),
        _get_query_param(upstream_url, "offset"),
    )
    return pagination.to_url(url)


def get_adjusted_pagination_for_queue(pagination: PaginationData) -> PaginationData:
    """
    Widens the page requested to the Transaction Service, so conflicts split between
    pages can be detected. First page requests one more item (first item of the next
    page), next pages also request the last item of the previous page

    :param pagination: Pagination requested by the client
    :return: Pagination to use for the Transaction Service
    """
    if pagination.offset == 0:
        return PaginationData(limit=pagination.limit + 1, offset=0)
    return PaginationData(limit=pagination.limit + 2, offset=pagination.offset - 1)
