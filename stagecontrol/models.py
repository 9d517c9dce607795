"""Domain models for user records and listing queries."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from .errors import BadRequest

# Wire names of the searchable and sortable record fields.
USER_FIELDS: Tuple[str, ...] = ("fullName", "email", "role")
FIELD_LABELS: Dict[str, str] = {
    "fullName": "Full Name",
    "email": "Email",
    "role": "Role",
}
PAGE_SIZE_OPTIONS: Tuple[int, ...] = (5, 10, 25)

DEFAULT_SORT_KEY = "fullName"
DEFAULT_PAGE_SIZE = 10


class SortDirection(str, Enum):
    """Ordering applied to the sort column."""

    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


def normalise_field(name: str) -> str:
    """Return ``name`` if it is a known record field, else raise ``BadRequest``."""

    value = (name or "").strip()
    if value not in USER_FIELDS:
        raise BadRequest(f"Unknown field '{name}'; expected one of {', '.join(USER_FIELDS)}")
    return value


def parse_direction(value: str | SortDirection) -> SortDirection:
    if isinstance(value, SortDirection):
        return value
    try:
        return SortDirection((value or "").strip().lower())
    except ValueError as exc:
        raise BadRequest("Sort direction must be 'asc' or 'desc'") from exc


@dataclass(frozen=True)
class UserRecord:
    """A user record as persisted by the record store."""

    id: str
    full_name: str
    email: str
    role: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "_id": self.id,
            "fullName": self.full_name,
            "email": self.email,
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "UserRecord":
        identifier = data.get("_id", data.get("id"))
        if identifier is None:
            raise ValueError("User payload is missing an identifier")
        return cls(
            id=str(identifier),
            full_name=str(data.get("fullName") or ""),
            email=str(data.get("email") or ""),
            role=str(data.get("role") or ""),
        )


@dataclass(frozen=True)
class ListingRequest:
    """One page of a search/sort query over the user collection."""

    search_text: str = ""
    search_field: str = DEFAULT_SORT_KEY
    sort_key: str = DEFAULT_SORT_KEY
    sort_direction: SortDirection = SortDirection.ASC
    page_index: int = 0
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        normalise_field(self.search_field)
        normalise_field(self.sort_key)
        object.__setattr__(self, "sort_direction", parse_direction(self.sort_direction))
        if self.page_index < 0:
            raise BadRequest("Page index must not be negative")
        if self.page_size < 1:
            raise BadRequest("Page size must be at least 1")

    @property
    def skip(self) -> int:
        return self.page_index * self.page_size


@dataclass(frozen=True)
class ListingResult:
    """The records of one page plus the number of records matching the filter."""

    records: Tuple[UserRecord, ...]
    total_match_count: int

    def page_count(self, page_size: int) -> int:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        return math.ceil(self.total_match_count / page_size)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SORT_KEY",
    "FIELD_LABELS",
    "ListingRequest",
    "ListingResult",
    "PAGE_SIZE_OPTIONS",
    "SortDirection",
    "USER_FIELDS",
    "UserRecord",
    "normalise_field",
    "parse_direction",
]
