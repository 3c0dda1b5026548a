"""Pagination traversal over Jira collections.

Jira exposes two incompatible paging contracts:

- offset paging (``startAt``/``maxResults``) where every page reports
  ``total`` and usually ``isLast``;
- token paging (``nextPageToken``) where the only signal is whether the
  server handed back another token.

Each contract gets its own strategy. Which one a deployment uses is a
configuration choice; strategies never inspect a response to guess.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from services.errors import FetchCancelledError, TraversalError, UpstreamTransportError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_ITEMS = 2000

OFFSET_MODE = "offset"
TOKEN_MODE = "token"


@dataclass
class PageCollection:
    """Records gathered by one traversal call."""

    records: list = field(default_factory=list)
    total: Optional[int] = None
    next_cursor: Optional[str] = None
    truncated: bool = False


def page_records(data) -> list:
    """Return the records of a page, whichever key Jira used for them."""
    if not isinstance(data, dict):
        return []
    records = data.get("values")
    if records is None:
        records = data.get("issues")
    return records or []


class PaginationStrategy:
    """Common interface of the two paging contracts."""

    mode = None

    def __init__(self, client, page_size: int = DEFAULT_PAGE_SIZE,
                 max_items: int = DEFAULT_MAX_ITEMS):
        self.client = client
        self.page_size = page_size
        self.max_items = max_items

    def collect(self, endpoint: str, params: Optional[dict] = None,
                cursor: Optional[str] = None) -> PageCollection:
        raise NotImplementedError


class OffsetPagination(PaginationStrategy):
    """Drains an offset-paged collection into memory."""

    mode = OFFSET_MODE

    def fetch_all(self, endpoint: str, params: Optional[dict] = None,
                  cancel_event: Optional[threading.Event] = None) -> PageCollection:
        """Fetch every page of ``endpoint`` up to the safety ceiling.

        The offset advances by the number of records actually returned, as
        Jira may return fewer than ``maxResults``. A transport failure on any
        page aborts the traversal; partial results are never returned.

        Raises:
            TraversalError: when a page request fails.
            FetchCancelledError: when ``cancel_event`` is set between pages.
        """
        results = []
        start_at = 0
        total = None
        truncated = False
        is_last = False

        logger.info(f"[Fetching] {endpoint}")

        while not is_last:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError(f"Traversal of {endpoint} cancelled at startAt {start_at}")

            page_params = dict(params or {})
            page_params.update({"startAt": start_at, "maxResults": self.page_size})

            try:
                data = self.client.get(endpoint, params=page_params)
            except UpstreamTransportError as e:
                raise TraversalError(
                    f"Jira API error at startAt {start_at}: {e.message}",
                    status_code=e.status_code, details=e.details, offset=start_at
                ) from e

            records = page_records(data)
            results.extend(records)

            if isinstance(data, dict) and data.get("total") is not None:
                total = data["total"]

            start_at += len(records)
            logger.debug(f"{endpoint}: {len(records)} records, startAt now {start_at}")

            if not records:
                is_last = True
            elif isinstance(data, dict) and data.get("isLast") is not None:
                is_last = bool(data["isLast"])
            else:
                is_last = start_at >= (total or 0)

            if len(results) >= self.max_items and not (is_last and len(results) == self.max_items):
                logger.warning(
                    f"Hit safety limit of {self.max_items} items while fetching {endpoint}"
                )
                results = results[:self.max_items]
                truncated = True
                is_last = True

        return PageCollection(records=results, total=total, truncated=truncated)

    def collect(self, endpoint: str, params: Optional[dict] = None,
                cursor: Optional[str] = None) -> PageCollection:
        if cursor is not None:
            raise ValueError("Offset pagination does not accept a continuation token")
        return self.fetch_all(endpoint, params)


class TokenPagination(PaginationStrategy):
    """Hands one token-paged page back to the caller at a time.

    Token-paged collections carry no completion flag, so draining them here
    would be unbounded. The caller asks again with the returned token.
    """

    mode = TOKEN_MODE

    def fetch_page(self, endpoint: str, params: Optional[dict] = None,
                   cursor: Optional[str] = None):
        """Fetch one page and return ``(records, next_cursor)``.

        ``next_cursor`` is None once the collection is exhausted.
        """
        page_params = dict(params or {})
        page_params["maxResults"] = self.page_size
        if cursor:
            page_params["nextPageToken"] = cursor

        logger.info(f"[Fetching] {endpoint} (token page)")

        try:
            data = self.client.get(endpoint, params=page_params)
        except UpstreamTransportError as e:
            raise TraversalError(
                f"Jira API error at page token {cursor!r}: {e.message}",
                status_code=e.status_code, details=e.details, cursor=cursor
            ) from e

        records = page_records(data)
        next_cursor = data.get("nextPageToken") if isinstance(data, dict) else None
        return records, next_cursor or None

    def collect(self, endpoint: str, params: Optional[dict] = None,
                cursor: Optional[str] = None) -> PageCollection:
        records, next_cursor = self.fetch_page(endpoint, params, cursor)
        return PageCollection(records=records, next_cursor=next_cursor)


def create_pagination(mode: str, client, page_size: int = DEFAULT_PAGE_SIZE,
                      max_items: int = DEFAULT_MAX_ITEMS) -> PaginationStrategy:
    """Build the strategy configured for the upstream contract."""
    strategies = {
        OFFSET_MODE: OffsetPagination,
        TOKEN_MODE: TokenPagination,
    }
    if mode not in strategies:
        raise ValueError(f"Unknown pagination mode: {mode!r}")
    return strategies[mode](client, page_size=page_size, max_items=max_items)
