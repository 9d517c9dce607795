"""Client-side state machine for the user listing and its edit dialog.

All state changes go through :func:`transition`, a pure function of the
current :class:`ConsoleState` and an event. :class:`ListController` wires the
transitions to the API client: listing changes are debounced, mutations are
followed by a fresh listing from the server, and listing responses that are
not the latest request are discarded.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from .debounce import DEFAULT_QUIET_PERIOD, Debouncer, LoopScheduler, Scheduler
from .errors import ConsoleError, ValidationError
from .models import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_KEY,
    PAGE_SIZE_OPTIONS,
    ListingRequest,
    ListingResult,
    SortDirection,
    UserRecord,
    normalise_field,
)

logger = logging.getLogger("stagecontrol.controller")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class DialogMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


class Phase(str, Enum):
    LOADED = "loaded"
    LOADING = "loading"
    DIALOG_OPEN = "dialog_open"
    ERROR = "error"


@dataclass(frozen=True)
class WorkingRecord:
    """The dialog's copy of a record; ``id`` is ``None`` while creating."""

    id: Optional[str] = None
    full_name: str = ""
    email: str = ""
    role: str = ""

    @classmethod
    def from_record(cls, record: UserRecord) -> "WorkingRecord":
        return cls(id=record.id, full_name=record.full_name, email=record.email, role=record.role)

    def with_field(self, name: str, value: str) -> "WorkingRecord":
        attribute = {"fullName": "full_name", "email": "email", "role": "role"}[normalise_field(name)]
        return replace(self, **{attribute: value})

    def payload(self) -> Dict[str, str]:
        return {
            "fullName": self.full_name.strip(),
            "email": self.email.strip(),
            "role": self.role.strip(),
        }


def validate_record(record: WorkingRecord) -> None:
    """Raise ``ValidationError`` for the first problem found in ``record``.

    Full name, email and role are required for both new and existing records.
    """

    if not record.full_name.strip():
        raise ValidationError("Full Name is required", field="fullName")
    email = record.email.strip()
    if not email:
        raise ValidationError("Email is required", field="email")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", field="email")
    if not record.role.strip():
        raise ValidationError("Role is required", field="role")


@dataclass(frozen=True)
class ConsoleState:
    search_text: str = ""
    search_field: str = DEFAULT_SORT_KEY
    sort_key: str = DEFAULT_SORT_KEY
    sort_direction: SortDirection = SortDirection.ASC
    page: int = 0
    page_size: int = DEFAULT_PAGE_SIZE
    records: Tuple[UserRecord, ...] = ()
    total: int = 0
    dialog: Optional[DialogMode] = None
    working: Optional[WorkingRecord] = None
    error_message: Optional[str] = None
    background_error: Optional[str] = None
    is_loading: bool = False
    request_seq: int = 0

    @property
    def phase(self) -> Phase:
        if self.dialog is not None:
            return Phase.DIALOG_OPEN
        if self.is_loading:
            return Phase.LOADING
        if self.background_error:
            return Phase.ERROR
        return Phase.LOADED

    @property
    def page_count(self) -> int:
        return ListingResult(records=(), total_match_count=self.total).page_count(self.page_size)

    def listing_request(self) -> ListingRequest:
        return ListingRequest(
            search_text=self.search_text,
            search_field=self.search_field,
            sort_key=self.sort_key,
            sort_direction=self.sort_direction,
            page_index=self.page,
            page_size=self.page_size,
        )


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SearchChanged:
    text: str
    field: str


@dataclass(frozen=True)
class SortToggled:
    key: str


@dataclass(frozen=True)
class PageChanged:
    page: int


@dataclass(frozen=True)
class PageSizeChanged:
    page_size: int


@dataclass(frozen=True)
class ListingRequested:
    request_id: int


@dataclass(frozen=True)
class ListingLoaded:
    request_id: int
    result: ListingResult


@dataclass(frozen=True)
class ListingFailed:
    request_id: int
    message: str


@dataclass(frozen=True)
class DialogOpened:
    record: Optional[UserRecord] = None


@dataclass(frozen=True)
class FieldEdited:
    field: str
    value: str


@dataclass(frozen=True)
class DialogClosed:
    pass


@dataclass(frozen=True)
class SaveRejected:
    message: str


@dataclass(frozen=True)
class SaveFailed:
    message: str


@dataclass(frozen=True)
class SaveSucceeded:
    pass


@dataclass(frozen=True)
class DeleteFailed:
    message: str


Event = Union[
    SearchChanged,
    SortToggled,
    PageChanged,
    PageSizeChanged,
    ListingRequested,
    ListingLoaded,
    ListingFailed,
    DialogOpened,
    FieldEdited,
    DialogClosed,
    SaveRejected,
    SaveFailed,
    SaveSucceeded,
    DeleteFailed,
]


def transition(state: ConsoleState, event: Event) -> ConsoleState:
    """Return the state that follows ``state`` after ``event``."""

    if isinstance(event, SearchChanged):
        return replace(
            state,
            search_text=event.text,
            search_field=normalise_field(event.field),
            page=0,
            is_loading=True,
            request_seq=state.request_seq + 1,
        )

    if isinstance(event, SortToggled):
        key = normalise_field(event.key)
        if key == state.sort_key:
            direction = state.sort_direction.flipped()
        else:
            direction = SortDirection.ASC
        return replace(
            state,
            sort_key=key,
            sort_direction=direction,
            is_loading=True,
            request_seq=state.request_seq + 1,
        )

    if isinstance(event, PageChanged):
        if event.page < 0:
            raise ValueError("Page must not be negative")
        return replace(state, page=event.page, is_loading=True, request_seq=state.request_seq + 1)

    if isinstance(event, PageSizeChanged):
        if event.page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(
                f"Page size must be one of {', '.join(str(size) for size in PAGE_SIZE_OPTIONS)}"
            )
        return replace(
            state,
            page_size=event.page_size,
            page=0,
            is_loading=True,
            request_seq=state.request_seq + 1,
        )

    if isinstance(event, ListingRequested):
        return replace(state, request_seq=event.request_id, is_loading=True)

    if isinstance(event, ListingLoaded):
        if event.request_id != state.request_seq:
            return state
        return replace(
            state,
            records=event.result.records,
            total=event.result.total_match_count,
            is_loading=False,
            background_error=None,
        )

    if isinstance(event, ListingFailed):
        if event.request_id != state.request_seq:
            return state
        return replace(state, is_loading=False, background_error=event.message)

    if isinstance(event, DialogOpened):
        if event.record is None:
            return replace(state, dialog=DialogMode.CREATE, working=WorkingRecord(), error_message=None)
        return replace(
            state,
            dialog=DialogMode.EDIT,
            working=WorkingRecord.from_record(event.record),
            error_message=None,
        )

    if isinstance(event, FieldEdited):
        if state.working is None:
            raise ValueError("No record is open for editing")
        return replace(state, working=state.working.with_field(event.field, event.value))

    if isinstance(event, (DialogClosed, SaveSucceeded)):
        return replace(state, dialog=None, working=None, error_message=None)

    if isinstance(event, (SaveRejected, SaveFailed)):
        return replace(state, error_message=event.message)

    if isinstance(event, DeleteFailed):
        return replace(state, background_error=event.message)

    raise TypeError(f"Unsupported event: {event!r}")


class UsersGateway(Protocol):
    async def list_users(self, request: ListingRequest) -> ListingResult: ...

    async def create_user(self, fields: Dict[str, str]) -> UserRecord: ...

    async def update_user(self, user_id: str, fields: Dict[str, str]) -> str: ...

    async def delete_user(self, user_id: str) -> str: ...


class ListController:
    """Drive a :class:`ConsoleState` from user input and API responses."""

    def __init__(
        self,
        client: UsersGateway,
        *,
        scheduler: Scheduler | None = None,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(
                f"Page size must be one of {', '.join(str(size) for size in PAGE_SIZE_OPTIONS)}"
            )
        self._client = client
        self._state = ConsoleState(page_size=page_size)
        self._debouncer = Debouncer(
            self._start_listing,
            scheduler=scheduler or LoopScheduler(),
            quiet_period=quiet_period,
        )
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[Callable[[ConsoleState], None]] = []

    @property
    def state(self) -> ConsoleState:
        return self._state

    def subscribe(self, callback: Callable[[ConsoleState], None]) -> None:
        self._listeners.append(callback)

    def dispatch(self, event: Event) -> ConsoleState:
        self._state = transition(self._state, event)
        for callback in list(self._listeners):
            callback(self._state)
        return self._state

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def set_search(self, text: str, field: str | None = None) -> None:
        self.dispatch(SearchChanged(text=text, field=field or self._state.search_field))
        self._debouncer(self._state.listing_request())

    def toggle_sort(self, key: str) -> None:
        self.dispatch(SortToggled(key))
        self._debouncer(self._state.listing_request())

    def set_page(self, page: int) -> None:
        self.dispatch(PageChanged(page))
        self._debouncer(self._state.listing_request())

    def set_page_size(self, page_size: int) -> None:
        self.dispatch(PageSizeChanged(page_size))
        self._debouncer(self._state.listing_request())

    async def refresh(self) -> None:
        """Fetch the current page immediately, bypassing the debouncer."""

        await self._load(self._state.listing_request())

    async def start(self) -> None:
        await self.refresh()

    def _start_listing(self, request: ListingRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._load(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _load(self, request: ListingRequest) -> None:
        request_id = self._state.request_seq + 1
        self.dispatch(ListingRequested(request_id))
        try:
            result = await self._client.list_users(request)
        except ConsoleError as exc:
            logger.error("Failed to fetch users: %s", exc)
            self.dispatch(ListingFailed(request_id, str(exc)))
            return
        if request_id != self._state.request_seq:
            logger.debug("Discarding stale listing response %d", request_id)
        self.dispatch(ListingLoaded(request_id, result))

    # ------------------------------------------------------------------
    # Dialog and mutations
    # ------------------------------------------------------------------
    def open_create(self) -> None:
        self.dispatch(DialogOpened())

    def open_edit(self, record: UserRecord) -> None:
        self.dispatch(DialogOpened(record))

    def edit_field(self, name: str, value: str) -> None:
        self.dispatch(FieldEdited(name, value))

    def close_dialog(self) -> None:
        self.dispatch(DialogClosed())

    async def save(self) -> bool:
        """Validate and send the working record; refresh the listing on success."""

        working = self._state.working
        if working is None:
            raise RuntimeError("No record is open for editing")

        try:
            validate_record(working)
        except ValidationError as exc:
            self.dispatch(SaveRejected(str(exc)))
            return False

        try:
            if working.id:
                await self._client.update_user(working.id, working.payload())
            else:
                await self._client.create_user(working.payload())
        except ConsoleError as exc:
            logger.error("Error saving user: %s", exc)
            self.dispatch(SaveFailed(str(exc)))
            return False

        self.dispatch(SaveSucceeded())
        await self.refresh()
        return True

    async def delete(self, user_id: str) -> bool:
        try:
            await self._client.delete_user(user_id)
        except ConsoleError as exc:
            logger.error("Error deleting user %s: %s", user_id, exc)
            self.dispatch(DeleteFailed(str(exc)))
            return False
        await self.refresh()
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def wait_idle(self) -> None:
        """Wait for every listing request already dispatched by the debouncer."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def settle(self) -> None:
        """Dispatch a pending debounced listing now and wait for it to land."""

        self._debouncer.flush()
        await self.wait_idle()

    def close(self) -> None:
        """Tear down the view: a pending debounced listing never fires."""

        self._debouncer.cancel()


__all__ = [
    "ConsoleState",
    "DeleteFailed",
    "DialogClosed",
    "DialogMode",
    "DialogOpened",
    "EMAIL_PATTERN",
    "Event",
    "FieldEdited",
    "ListController",
    "ListingFailed",
    "ListingLoaded",
    "ListingRequested",
    "PageChanged",
    "PageSizeChanged",
    "Phase",
    "SaveFailed",
    "SaveRejected",
    "SaveSucceeded",
    "SearchChanged",
    "SortToggled",
    "UsersGateway",
    "WorkingRecord",
    "transition",
    "validate_record",
]
