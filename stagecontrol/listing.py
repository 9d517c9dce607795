"""Translate listing requests into record store queries."""

from __future__ import annotations

import logging
from typing import Dict, Mapping

from .database import Database
from .models import (
    DEFAULT_SORT_KEY,
    ListingRequest,
    ListingResult,
    SortDirection,
    normalise_field,
    parse_direction,
)

logger = logging.getLogger("stagecontrol.listing")


def build_filter(request: ListingRequest) -> Dict[str, str]:
    """Return the store filter for ``request``: at most one field predicate."""

    text = request.search_text.strip()
    if not text:
        return {}
    return {request.search_field: text}


class ListingService:
    """Produce listing results (one page plus the total) from the record store.

    Store failures are raised to the caller as ``StoreUnavailable``; nothing
    is retried here.
    """

    def __init__(self, store: Database) -> None:
        self._store = store

    def query(self, request: ListingRequest) -> ListingResult:
        return self.search(
            build_filter(request),
            sort_key=request.sort_key,
            sort_direction=request.sort_direction,
            page_index=request.page_index,
            page_size=request.page_size,
        )

    def search(
        self,
        filters: Mapping[str, str],
        *,
        sort_key: str = DEFAULT_SORT_KEY,
        sort_direction: SortDirection | str = SortDirection.ASC,
        page_index: int = 0,
        page_size: int = 10,
    ) -> ListingResult:
        """Run a conjunction of substring filters and return the requested page."""

        cleaned: Dict[str, str] = {}
        for field, text in filters.items():
            value = (text or "").strip()
            if value:
                cleaned[normalise_field(field)] = value

        # Validates the paging and sort arguments the same way a request would.
        page = ListingRequest(
            sort_key=sort_key,
            sort_direction=parse_direction(sort_direction),
            page_index=page_index,
            page_size=page_size,
        )

        records, total = self._store.find_page(
            cleaned,
            sort=(page.sort_key, page.sort_direction),
            skip=page.skip,
            limit=page.page_size,
        )
        logger.debug(
            "Listed %d of %d users (filters=%s, sort=%s %s, page=%d)",
            len(records),
            total,
            cleaned,
            page.sort_key,
            page.sort_direction.value,
            page.page_index,
        )
        return ListingResult(records=tuple(records), total_match_count=total)


__all__ = ["ListingService", "build_filter"]
