"""Interactive terminal console for browsing and editing user records."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import anyio

from .client import UsersClient
from .config import ConsoleSettings
from .controller import ConsoleState, ListController
from .models import FIELD_LABELS, USER_FIELDS, SortDirection, UserRecord

logger = logging.getLogger("stagecontrol.console")

ReadLine = Callable[[str], Awaitable[str]]
Write = Callable[[str], None]

HELP_TEXT = """Commands:
  s <text>    search the active field (no text clears the search)
  f <field>   choose the search field: fullName, email or role
  o <field>   sort by a column (repeat to flip the direction)
  n / p       next / previous page
  g <page>    go to a page (1-based)
  z <size>    rows per page: 5, 10 or 25
  a           add a user
  e <row>     edit the user shown in <row>
  d <row>     delete the user shown in <row>
  r           reload the current page
  h           show this help
  q           quit"""


async def _read_line(prompt: str) -> str:
    return await anyio.to_thread.run_sync(input, prompt)


def _sort_marker(state: ConsoleState, field: str) -> str:
    if state.sort_key != field:
        return ""
    return " ^" if state.sort_direction is SortDirection.ASC else " v"


def render_table(state: ConsoleState) -> str:
    """Render the cached page, its sort markers and the pagination footer."""

    lines = []
    if state.search_text.strip():
        lines.append(f"Search {FIELD_LABELS[state.search_field]}: {state.search_text.strip()!r}")

    name_header = FIELD_LABELS["fullName"] + _sort_marker(state, "fullName")
    email_header = FIELD_LABELS["email"] + _sort_marker(state, "email")
    role_header = FIELD_LABELS["role"] + _sort_marker(state, "role")
    lines.append(f"{'#':>3}  {name_header:<24}  {email_header:<32}  {role_header}")
    lines.append("-" * 80)

    if not state.records:
        lines.append("No users match the current filters.")
    for index, user in enumerate(state.records, start=1):
        lines.append(f"{index:>3}  {user.full_name:<24}  {user.email:<32}  {user.role}")

    pages = max(state.page_count, 1)
    lines.append(
        f"Page {state.page + 1} of {pages} ({state.total} user(s), {state.page_size} per page)"
    )
    if state.background_error:
        lines.append(f"Warning: {state.background_error}")
    return "\n".join(lines)


class AdminConsole:
    """Line-oriented form layer on top of :class:`ListController`."""

    def __init__(
        self,
        controller: ListController,
        *,
        read_line: ReadLine = _read_line,
        write: Write = print,
    ) -> None:
        self._controller = controller
        self._read_line = read_line
        self._write = write

    async def run(self) -> None:
        self._write("StageControl user administration")
        self._write("Type 'h' for help. Press Ctrl+C at any time to exit.\n")
        await self._controller.start()
        self._show()

        try:
            while True:
                try:
                    line = await self._read_line("> ")
                except EOFError:
                    break
                command, _, argument = line.strip().partition(" ")
                if command == "q":
                    break
                await self._handle(command, argument.strip())
        except KeyboardInterrupt:
            self._write("\nExiting administration console.")
        finally:
            self._controller.close()

    def _show(self) -> None:
        self._write(render_table(self._controller.state))

    async def _handle(self, command: str, argument: str) -> None:
        controller = self._controller
        state = controller.state

        if command == "h":
            self._write(HELP_TEXT)
            return
        if command == "":
            return

        try:
            if command == "s":
                controller.set_search(argument)
            elif command == "f":
                controller.set_search(state.search_text, argument)
            elif command == "o":
                controller.toggle_sort(argument)
            elif command == "n":
                if state.page + 1 >= max(state.page_count, 1):
                    self._write("Already on the last page.")
                    return
                controller.set_page(state.page + 1)
            elif command == "p":
                if state.page == 0:
                    self._write("Already on the first page.")
                    return
                controller.set_page(state.page - 1)
            elif command == "g":
                controller.set_page(int(argument) - 1)
            elif command == "z":
                controller.set_page_size(int(argument))
            elif command == "r":
                await controller.refresh()
            elif command == "a":
                controller.open_create()
                await self._run_dialog()
            elif command == "e":
                record = self._select_row(argument)
                if record is None:
                    return
                controller.open_edit(record)
                await self._run_dialog()
            elif command == "d":
                record = self._select_row(argument)
                if record is None:
                    return
                await self._delete(record)
            else:
                self._write("Unknown command. Type 'h' for help.")
                return
        except ValueError as exc:
            self._write(f"Invalid input: {exc}")
            return

        await controller.settle()
        self._show()

    def _select_row(self, argument: str) -> Optional[UserRecord]:
        records = self._controller.state.records
        try:
            index = int(argument)
        except ValueError:
            self._write("Enter the row number shown in the first column.")
            return None
        if index < 1 or index > len(records):
            self._write(f"Row must be between 1 and {len(records)}.")
            return None
        return records[index - 1]

    async def _run_dialog(self) -> None:
        controller = self._controller
        title = "Edit User" if controller.state.working and controller.state.working.id else "Add User"
        self._write(f"\n{title} (press Enter to keep the value shown in brackets)")

        while controller.state.working is not None:
            working = controller.state.working
            for field in USER_FIELDS:
                current = working.payload()[field]
                value = await self._read_line(f"{FIELD_LABELS[field]} [{current}]: ")
                if value.strip():
                    controller.edit_field(field, value)

            if await controller.save():
                self._write("User saved.")
                return

            self._write(f"Error: {controller.state.error_message}")
            retry = await self._read_line("Try again? [Y/n]: ")
            if retry.strip().lower() in {"n", "no"}:
                controller.close_dialog()
                self._write("Changes discarded.")
                return

    async def _delete(self, record: UserRecord) -> None:
        answer = await self._read_line(f"Delete {record.full_name} <{record.email}>? [y/N]: ")
        if answer.strip().lower() not in {"y", "yes"}:
            self._write("Delete cancelled.")
            return
        if await self._controller.delete(record.id):
            self._write("User deleted.")
        else:
            self._write(f"Error: {self._controller.state.background_error}")


async def run_console(settings: ConsoleSettings, *, service_url: Optional[str] = None) -> None:
    """Connect to the API and run the console until the operator quits."""

    base_url = service_url or settings.api_url
    logger.info("Connecting admin console to %s", base_url)
    async with UsersClient(base_url, timeout=settings.timeout) as client:
        controller = ListController(
            client,
            quiet_period=settings.quiet_period,
            page_size=settings.page_size,
        )
        await AdminConsole(controller).run()


__all__ = ["AdminConsole", "HELP_TEXT", "render_table", "run_console"]
