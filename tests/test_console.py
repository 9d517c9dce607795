from __future__ import annotations

import asyncio
from typing import List

from stagecontrol.console import AdminConsole, render_table
from stagecontrol.controller import ConsoleState, ListController
from stagecontrol.debounce import ManualScheduler
from stagecontrol.models import SortDirection

from test_controller import ANN, BOB, FakeGateway


def _run_session(gateway: FakeGateway, lines: List[str]) -> List[str]:
    output: List[str] = []
    remaining = list(lines)

    async def read_line(prompt: str) -> str:
        output.append(prompt)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    async def scenario() -> None:
        controller = ListController(gateway, scheduler=ManualScheduler())
        await AdminConsole(controller, read_line=read_line, write=output.append).run()

    asyncio.run(scenario())
    return output


def test_render_table_shows_rows_sort_marker_and_footer() -> None:
    state = ConsoleState(
        search_text="ann",
        sort_key="email",
        sort_direction=SortDirection.DESC,
        records=(ANN,),
        total=11,
        page=1,
    )

    table = render_table(state)

    assert "Search Full Name: 'ann'" in table
    assert "Email v" in table
    assert "Ann Lee" in table
    assert "Page 2 of 2 (11 user(s), 10 per page)" in table


def test_render_table_for_an_empty_listing_with_warning() -> None:
    table = render_table(ConsoleState(background_error="Failed to contact user service"))

    assert "No users match the current filters." in table
    assert "Page 1 of 1 (0 user(s), 10 per page)" in table
    assert "Warning: Failed to contact user service" in table


def test_session_searches_sorts_and_quits() -> None:
    gateway = FakeGateway()

    output = _run_session(gateway, ["s ann", "o fullName", "z 5", "q"])

    assert [request.search_text for request in gateway.list_calls] == ["", "ann", "ann", "ann"]
    last = gateway.list_calls[-1]
    assert (last.sort_direction, last.page_size) == (SortDirection.DESC, 5)
    assert any("Full Name v" in line for line in output)


def test_session_reports_invalid_input() -> None:
    gateway = FakeGateway()

    output = _run_session(gateway, ["z 7", "o password", "x", "e 9"])

    assert any(line.startswith("Invalid input: Page size must be one of") for line in output)
    assert any(line.startswith("Invalid input: Unknown field 'password'") for line in output)
    assert "Unknown command. Type 'h' for help." in output
    assert "Row must be between 1 and 2." in output
    assert len(gateway.list_calls) == 1


def test_session_edits_a_row_after_a_rejected_save() -> None:
    gateway = FakeGateway()

    output = _run_session(
        gateway,
        ["e 2", "", "bob-at-example", "", "", "", "bob@stone.io", "", "q"],
    )

    assert "Error: Invalid email format" in output
    assert "User saved." in output
    assert gateway.mutations == [
        ("update", (BOB.id, {"fullName": "Bob Stone", "email": "bob@stone.io", "role": "Moderator"}))
    ]


def test_session_can_discard_a_new_record() -> None:
    gateway = FakeGateway()

    output = _run_session(gateway, ["a", "Carla Diaz", "", "Admin", "n", "q"])

    assert "Error: Email is required" in output
    assert "Changes discarded." in output
    assert gateway.mutations == []


def test_session_deletes_after_confirmation() -> None:
    gateway = FakeGateway()

    output = _run_session(gateway, ["d 1", "n", "d 1", "y", "q"])

    assert "Delete cancelled." in output
    assert "User deleted." in output
    assert gateway.mutations == [("delete", ANN.id)]
