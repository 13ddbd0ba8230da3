from __future__ import annotations

import pytest

from tablemapper.errors import ConfigurationError, QueryFailedError, ValidationError
from tablemapper.sql import DefaultSpec, Rule, Table
from tablemapper.sql.columns import now_iso
from tablemapper.sql.validators import NOT_A_NUMBER

THING_COLS = {
    "name": {"type": "varchar", "size": 5, "required": True},
    "qty": {"type": "smallint", "default": 1},
    "price": {"type": "numeric", "size": 5, "scope": 2},
    "ratio": {"type": "float"},
    "active": {"type": "bool", "default": True},
    "born": {"type": "date"},
    "alarm": {"type": "time"},
    "seen": {"type": "timestamp"},
    "notes": {"type": "clob"},
    "code": {"type": "char", "size": 3, "valid": [("in_list", ["abc", "xyz"])]},
}


@pytest.fixture
def things(backend) -> Table:
    return Table(backend, "Things", THING_COLS, idx={"name": "unique"})


def test_auto_setup_adds_key_and_stamps_first(backend):
    table = Table(backend, "widgets", {"label": {"type": "varchar", "size": 10}}, auto_create=False)
    assert list(table.cols) == ["id", "created", "updated", "label"]
    assert table.primary_col == "id"
    assert table.cols["id"].autoincrement is True
    assert {name: idx.type for name, idx in table.idx.items()} == {
        "id": "unique",
        "created": "normal",
        "updated": "normal",
    }
    assert "widgets" not in backend.list_tables()


def test_declared_auto_column_replaces_the_default(backend):
    table = Table(
        backend,
        "codes",
        {"id": {"type": "char", "size": 4, "primary": True}, "label": {"type": "varchar", "size": 10}},
        auto_create=False,
    )
    assert table.cols["id"].type == "char"
    assert "id" not in table.idx
    assert list(table.cols) == ["created", "updated", "id", "label"]


def test_malformed_declarations_raise_configuration_error(backend):
    with pytest.raises(ConfigurationError):
        Table(backend, "bad", {"x": {"type": "blob"}}, auto_create=False)
    with pytest.raises(ConfigurationError):
        Table(backend, "bad", {"x": {"type": "int"}}, idx={"y": "unique"}, auto_create=False)
    with pytest.raises(ConfigurationError):
        Table(backend, "", {}, auto_create=False)


def test_auto_create_runs_once(backend):
    table = Table(backend, "widgets", {"label": {"type": "varchar", "size": 10}})
    assert "widgets" in backend.list_tables()
    assert table._auto_create() is False


def test_failed_index_drops_the_new_table(backend):
    backend.query("CREATE TABLE other (name TEXT)")
    backend.query("CREATE INDEX things__name__idx ON other (name)")

    with pytest.raises(QueryFailedError):
        Table(backend, "things", THING_COLS, idx={"name": "unique"})

    assert "things" not in backend.list_tables()


def test_name_is_lower_cased(things, backend):
    assert things.name == "things"
    assert "things" in backend.list_tables()


def test_insert_fills_defaults_sequence_and_stamps(things):
    row = things.insert({"name": "abc"})
    assert row["id"] == 1
    assert row["qty"] == 1
    assert row["active"] == 1
    assert len(row["created"]) == 19 and row["created"][10] == "T"

    again = things.insert({"name": "def"})
    assert again["id"] == 2


def test_insert_round_trips_through_the_database(things):
    written = things.insert(
        {
            "name": "abc",
            "qty": "7",
            "price": "123.45",
            "ratio": 0.5,
            "active": "0",
            "born": "2024-02-29",
            "alarm": "12:30",
            "seen": "2024-01-02 03:04:05",
            "notes": 42,
            "code": "xyz",
            "unknown": "dropped",
        }
    )
    assert "unknown" not in written
    assert things.fetch(written["id"]) == {
        "id": 1,
        "created": written["created"],
        "updated": written["updated"],
        "name": "abc",
        "qty": 7,
        "price": 123.45,
        "ratio": 0.5,
        "active": 0,
        "born": "2024-02-29",
        "alarm": "12:30:00",
        "seen": "2024-01-02T03:04:05",
        "notes": "42",
        "code": "xyz",
    }


def test_invalid_insert_writes_nothing(things, backend):
    with pytest.raises(ValidationError) as excinfo:
        things.insert({"name": "toolong"})
    assert excinfo.value.invalid == {"name": ["max length 5"]}
    assert backend.query("SELECT COUNT(*) AS n FROM things").fetchone() == {"n": 0}


def test_validation_collects_every_failure(things):
    with pytest.raises(ValidationError) as excinfo:
        things.insert(
            {
                "name": None,
                "qty": "lots",
                "price": "1234.5",
                "ratio": "n/a",
                "born": "2023-02-29",
                "alarm": "25:00",
                "seen": "yesterday",
                "code": "abd",
            }
        )
    assert excinfo.value.invalid == {
        "name": ["may not be blank"],
        "qty": [NOT_A_NUMBER],
        "price": ["must have at most 5 digits with 2 decimal places"],
        "ratio": [NOT_A_NUMBER],
        "born": ["must be an ISO 8601 date (YYYY-MM-DD)"],
        "alarm": ["must be an ISO 8601 time (HH:MM:SS)"],
        "seen": ["must be an ISO 8601 timestamp (YYYY-MM-DDTHH:MM:SS)"],
        "code": ["not an allowed value"],
    }


def test_integer_range_is_enforced(things):
    with pytest.raises(ValidationError) as excinfo:
        things.insert({"name": "abc", "qty": 40000})
    assert excinfo.value.invalid == {"qty": ["must be between -32768 and 32767"]}


def test_optional_none_is_stored_as_null(things):
    row = things.insert({"name": "abc", "qty": None})
    assert things.fetch(row["id"])["qty"] is None


def test_rules_accept_callables_and_custom_messages(backend):
    table = Table(
        backend,
        "evens",
        {
            "n": {
                "type": "int",
                "valid": [Rule(name=lambda value: value % 2 == 0, message="must be even"), ("in_range", 0, 10)],
            }
        },
    )
    with pytest.raises(ValidationError) as excinfo:
        table.insert({"n": 11})
    assert excinfo.value.invalid == {"n": ["must be even", "must be between 0 and 10"]}
    assert table.insert({"n": 4})["n"] == 4


def test_callback_defaults_are_invoked_per_row(backend):
    counter = iter(range(100))
    table = Table(
        backend,
        "tickets",
        {"seq": {"type": "int", "default": DefaultSpec.callback(lambda: next(counter))}},
    )
    assert table.fetch_default()["seq"] == 0
    assert table.insert({})["seq"] == 1


def test_update_never_writes_the_primary_key(things):
    row = things.insert({"name": "abc", "created": "2020-01-01T00:00:00", "updated": "2020-01-01T00:00:00"})
    result = things.update({"id": 99, "name": "xyz"}, {"id = ?": row["id"]})
    assert result["id"] == 99
    assert result["updated"] != "2020-01-01T00:00:00"

    stored = things.fetch(row["id"])
    assert stored["name"] == "xyz"
    assert stored["created"] == "2020-01-01T00:00:00"
    assert things.fetch(99) is None


def test_invalid_update_writes_nothing(things):
    row = things.insert({"name": "abc"})
    with pytest.raises(ValidationError):
        things.update({"name": "toolong"}, {"id = ?": row["id"]})
    assert things.fetch(row["id"])["name"] == "abc"


def test_save_inserts_or_updates(things):
    row = things.save({"name": "abc"})
    assert row["id"] == 1
    things.save({"id": row["id"], "name": "def"})
    assert [r["name"] for r in things.fetch_all()] == ["def"]


def test_select_helpers(things):
    for name in ("a1", "b2", "c3", "d4"):
        things.insert({"name": name, "qty": 2 if name < "c" else 3})

    assert [r["name"] for r in things.fetch_all({"qty = ?": 2}, order="name DESC")] == ["b2", "a1"]
    assert things.count_pages("qty = 3") == {"count": 2, "pages": 1}

    things.paging = 3
    assert [r["name"] for r in things.fetch_all(order="name", page=2)] == ["d4"]
    assert things.count_pages() == {"count": 4, "pages": 2}

    assert things.delete({"qty = ?": 3}) == 2
    assert things.count_pages()["count"] == 2


def test_increment_only_for_autoincrement_columns(things):
    assert things.increment("name") is None
    assert things.increment("id") == 1
    assert things.increment("id") == 2


def test_now_iso_shape():
    stamp = now_iso()
    assert len(stamp) == 19
    assert stamp[4] == "-" and stamp[10] == "T" and stamp[13] == ":"
