from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_db
from inspector.errors.codes import ErrorCode
from inspector.errors.exceptions import NotFound, OpenFailure, ValidationError
from inspector.schema import SchemaIntrospector


def test_lists_sources_sorted_without_side_files(databases_dir, introspector):
    (databases_dir / "shop.db-journal").write_bytes(b"")
    (databases_dir / "shop.db-wal").write_bytes(b"")
    (databases_dir / "shop.db-shm").write_bytes(b"")

    sources = introspector.list_data_sources()

    assert [s.name for s in sources] == ["room.db", "shop.db"]
    assert all(s.size > 0 for s in sources)


def test_orm_marker_is_detected(introspector):
    by_name = {s.name: s for s in introspector.list_data_sources()}
    assert by_name["room.db"].orm_managed is True
    assert by_name["shop.db"].orm_managed is False
    assert introspector.is_orm_managed("room.db")


def test_missing_directory_lists_nothing(tmp_path):
    assert SchemaIntrospector(tmp_path / "nope").list_data_sources() == []


def test_unlistable_directory_is_open_failure(introspector, monkeypatch):
    def denied(self):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "iterdir", denied)

    with pytest.raises(OpenFailure) as ei:
        introspector.list_data_sources()
    assert ei.value.code == ErrorCode.OPEN_FAILURE
    assert "Permission denied" in ei.value.details[0]


def test_unreadable_file_is_listed_as_unmanaged(databases_dir, introspector):
    (databases_dir / "garbage.db").write_bytes(b"this is not a database at all" * 10)

    names = {s.name: s for s in introspector.list_data_sources()}

    assert "garbage.db" in names
    assert names["garbage.db"].orm_managed is False


def test_schema_hides_reserved_tables(introspector):
    tables = {t.name: t for t in introspector.get_schema("shop.db")}

    assert "android_metadata" not in tables
    assert "sqlite_sequence" not in tables
    assert set(tables) == {"users", "orders", "profiles", "employees", "files", "tags"}


def test_room_marker_table_is_hidden(introspector):
    names = [t.name for t in introspector.get_schema("room.db")]
    assert names == ["notes"]


def test_column_metadata(introspector):
    users = introspector.get_table("shop.db", "users")

    assert users.row_count == 3
    assert users.column_names == ["id", "name", "email"]
    assert users.primary_key == ["id"]

    name = users.column("name")
    assert name is not None and name.not_null and name.type == "TEXT"
    email = users.column("email")
    assert email is not None and email.default_value == "'n/a'"
    assert not email.is_primary_key


def test_composite_primary_key_order(databases_dir, introspector):
    make_db(
        databases_dir / "pairs.db",
        "CREATE TABLE pairs(b TEXT, a TEXT, PRIMARY KEY (a, b));",
    )
    pairs = introspector.get_table("pairs.db", "pairs")
    assert pairs.primary_key == ["a", "b"]


def test_unknown_source_is_not_found(introspector):
    with pytest.raises(NotFound) as ei:
        introspector.get_schema("missing.db")
    assert ei.value.code == ErrorCode.NOT_FOUND


@pytest.mark.parametrize("source", ["../shop.db", "sub/shop.db", "..", "shop.db-wal"])
def test_source_outside_directory_is_not_found(introspector, source):
    with pytest.raises(NotFound):
        introspector.resolve_source(source)


def test_empty_source_is_validation_error(introspector):
    with pytest.raises(ValidationError):
        introspector.get_schema("")


def test_unknown_table_is_not_found(introspector):
    with pytest.raises(NotFound):
        introspector.get_table("shop.db", "nope")


def test_reserved_table_is_not_addressable(introspector):
    with pytest.raises(NotFound):
        introspector.get_table("shop.db", "android_metadata")


def test_corrupt_file_is_open_failure(databases_dir, introspector):
    (databases_dir / "broken.db").write_bytes(b"not sqlite" * 100)

    with pytest.raises(OpenFailure) as ei:
        introspector.get_schema("broken.db")
    assert ei.value.code == ErrorCode.OPEN_FAILURE
    assert not ei.value.retryable


def test_schema_reads_do_not_modify_file(databases_dir, introspector):
    path = databases_dir / "shop.db"
    before = path.read_bytes()

    introspector.list_data_sources()
    introspector.get_schema("shop.db")

    assert path.read_bytes() == before
