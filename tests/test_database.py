from __future__ import annotations

from pathlib import Path

import pytest

from stagecontrol.database import Database
from stagecontrol.errors import NotFound, StoreUnavailable, ValidationError
from stagecontrol.models import SortDirection


@pytest.fixture()
def database(tmp_path: Path):
    db_path = tmp_path / "stagecontrol.sqlite3"
    db = Database(db_path)
    db.initialize()
    yield db
    db.close()


def _seed(database: Database) -> None:
    database.insert("Ann Lee", "ann@x.com", "Admin")
    database.insert("bob Stone", "bob@example.com", "Moderator")
    database.insert("Carla Diaz", "carla@example.com", "Super Admin")
    database.insert("Dmitri Ann", "dmitri@x.com", "Moderator")


def test_insert_assigns_unique_identifiers(database: Database) -> None:
    first = database.insert("Ann Lee", "ann@x.com", "Admin")
    second = database.insert("Ann Lee", "ann@x.com", "Admin")

    assert first.id != second.id
    assert len(first.id) == 24
    assert database.get(first.id) == first


def test_insert_requires_every_field(database: Database) -> None:
    with pytest.raises(ValidationError) as excinfo:
        database.insert("Ann Lee", "  ", "Admin")
    assert str(excinfo.value) == "Full Name, Email, and Role are required"

    with pytest.raises(ValidationError):
        database.insert(None, "ann@x.com", "Admin")
    assert database.count() == 0


def test_find_filters_are_case_insensitive_substrings(database: Database) -> None:
    _seed(database)

    names = [user.full_name for user in database.find({"fullName": "ANN"})]
    assert names == ["Ann Lee", "Dmitri Ann"]
    assert database.count({"fullName": "ann"}) == 2

    both = database.find({"fullName": "ann", "email": "x.com"})
    assert {user.full_name for user in both} == {"Ann Lee", "Dmitri Ann"}
    assert database.count({"role": "admin"}) == 2


def test_find_treats_search_text_literally(database: Database) -> None:
    _seed(database)
    database.insert("Percent 100%", "pct@example.com", "Admin")

    assert database.count({"fullName": "%"}) == 1
    assert database.count({"fullName": ".*"}) == 0


def test_find_sorts_and_paginates(database: Database) -> None:
    _seed(database)

    ascending = [user.full_name for user in database.find(sort=("fullName", SortDirection.ASC))]
    assert ascending == ["Ann Lee", "bob Stone", "Carla Diaz", "Dmitri Ann"]

    descending = database.find(sort=("email", SortDirection.DESC), skip=1, limit=2)
    assert [user.email for user in descending] == ["carla@example.com", "bob@example.com"]

    assert database.find(skip=10, limit=5) == []


def test_ties_keep_insertion_order_across_pages(database: Database) -> None:
    for index in range(6):
        database.insert(f"User {index}", f"user{index}@example.com", "Moderator")

    pages = [
        database.find(sort=("role", SortDirection.ASC), skip=skip, limit=2)
        for skip in (0, 2, 4)
    ]
    seen = [user.full_name for page in pages for user in page]
    assert seen == [f"User {index}" for index in range(6)]


def test_update_replaces_named_fields_only(database: Database) -> None:
    user = database.insert("Ann Lee", "ann@x.com", "Admin")

    updated = database.update_by_id(user.id, {"role": "Moderator"})

    assert updated.role == "Moderator"
    assert updated.full_name == "Ann Lee"
    assert updated.email == "ann@x.com"


def test_update_missing_record_raises_not_found(database: Database) -> None:
    with pytest.raises(NotFound):
        database.update_by_id("f" * 24, {"role": "Admin"})
    with pytest.raises(NotFound):
        database.update_by_id("not-an-id", {"role": "Admin"})


def test_update_rejects_blank_values(database: Database) -> None:
    user = database.insert("Ann Lee", "ann@x.com", "Admin")

    with pytest.raises(ValidationError) as excinfo:
        database.update_by_id(user.id, {"email": " "})
    assert excinfo.value.field == "email"
    assert database.get(user.id).email == "ann@x.com"


def test_delete_is_idempotent(database: Database) -> None:
    user = database.insert("Ann Lee", "ann@x.com", "Admin")

    assert database.delete_by_id(user.id) is True
    assert database.delete_by_id(user.id) is False
    assert database.delete_by_id("garbage") is False
    assert database.get(user.id) is None
    assert database.count() == 0


def test_closed_database_is_unavailable(tmp_path: Path) -> None:
    database = Database(tmp_path / "closed.sqlite3")

    with pytest.raises(StoreUnavailable):
        database.find()

    with database:
        database.initialize()
        assert database.is_open
    assert not database.is_open

    with pytest.raises(StoreUnavailable):
        database.count()


def test_records_survive_reopening(tmp_path: Path) -> None:
    path = tmp_path / "persisted.sqlite3"
    with Database(path) as database:
        database.initialize()
        user = database.insert("Ann Lee", "ann@x.com", "Admin")

    with Database(path) as database:
        assert database.get(user.id) == user


def test_find_page_returns_records_and_total_together(database: Database) -> None:
    _seed(database)

    records, total = database.find_page({"role": "moderator"}, skip=1, limit=1)

    assert [user.full_name for user in records] == ["Dmitri Ann"]
    assert total == 2


def test_offsets_beyond_sqlite_integer_range_return_an_empty_page(database: Database) -> None:
    _seed(database)

    assert database.find(skip=10**20, limit=100) == []
    assert database.find(skip=0, limit=10**20)[0].full_name == "Ann Lee"
    assert database.find_page({"fullName": "ann"}, skip=10**20, limit=100) == ([], 2)
