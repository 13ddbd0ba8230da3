from __future__ import annotations

import pytest

from tablemapper.config import get_settings
from tablemapper.errors import ConfigurationError
from tablemapper.example import Nodes, Users
from tablemapper.model import BelongsTo, Catalog, FieldAccessor, Model, RecordStatus
from tablemapper.model.model import singular, underscore


class Tickets(Model):
    table_cols = {
        "code": {"type": "varchar", "size": 8},
        "number": {"type": "int"},
        "title": {"type": "varchar", "size": 40, "required": True},
    }
    sequence_cols = {"number": "ticket_numbers"}
    accessors = {
        "code": FieldAccessor(set=lambda rec, value: rec.set_raw("code", str(value).upper())),
        "title": {"get": lambda rec: (rec.get_raw("title") or "").title()},
    }
    paging = 4


@pytest.mark.parametrize(
    ("plural", "expected"),
    [
        ("areas", "area"),
        ("categories", "category"),
        ("boxes", "box"),
        ("matches", "match"),
        ("address", "address"),
        ("news", "new"),
        ("data", "data"),
    ],
)
def test_singular(plural, expected):
    assert singular(plural) == expected


def test_underscore():
    assert underscore("NodeTags") == "node_tags"
    assert underscore("Users") == "users"
    assert underscore("HTTPLog") == "httplog"


def test_model_defaults(seeded):
    nodes = seeded.get("nodes")
    assert nodes.table_name == nodes.model_name == "nodes"
    assert nodes.primary_col == "id"
    assert nodes.foreign_col == "node_id"
    assert nodes.order == "nodes.id"
    assert nodes.paging == 10
    assert nodes.field_names[-1] == "teaser"
    assert nodes.related_names == ["area", "author", "meta", "taggings", "tags"]
    assert list(nodes.table_cols)[:3] == ["id", "created", "updated"]


def test_paging_falls_back_to_settings(backend, monkeypatch):
    monkeypatch.setenv("DEFAULT_PAGING", "7")
    get_settings.cache_clear()
    assert Users(backend).paging == 7
    assert Tickets(backend).paging == 4


def test_standalone_model_gets_its_own_catalog(backend):
    users = Users(backend)
    assert users.catalog.get("users") is users
    assert "users" in users.catalog
    assert "nodes" not in users.catalog


def test_auto_create_can_be_turned_off(backend):
    Users(backend, auto_create=False)
    assert "users" not in backend.list_tables()


def test_catalog_registration(backend):
    catalog = Catalog(backend, [Users])
    assert catalog.names() == ["users"]
    assert Users in catalog

    nodes = catalog.get(Nodes)
    assert catalog.names() == ["nodes", "users"]
    assert catalog["NODES"] is nodes
    assert catalog.get("nodes") is nodes

    with pytest.raises(ConfigurationError):
        catalog.get("comments")

    class Impostor(Model):
        table_name = "users"

    with pytest.raises(ConfigurationError):
        catalog.register(Impostor)
    assert catalog.register(Impostor, name="impostors") == "impostors"


def test_models_are_created_lazily(backend):
    catalog = Catalog(backend, [Users, Nodes])
    assert backend.list_tables() == []
    catalog.get("users")
    assert backend.list_tables() == ["users"]


def test_relation_declared_as_dict(backend):
    class Posts(Model):
        table_cols = {"user_id": {"type": "int"}}
        related = {
            "writer": {"type": "belongs_to", "foreign_model": "users"},
            "broken": {"type": "has_some", "foreign_model": "users"},
        }

    catalog = Catalog(backend, [Users, Posts])
    posts = catalog.get("posts")
    writer = posts.get_related("writer")
    assert isinstance(writer, BelongsTo)
    assert writer.native_col == "user_id"
    with pytest.raises(ConfigurationError):
        posts.get_related("broken")


def test_column_and_relation_names_may_not_clash(backend):
    class Clash(Model):
        table_cols = {"owner": {"type": "int"}}
        related = {"owner": BelongsTo("users")}

    with pytest.raises(ConfigurationError):
        Clash(backend)


def test_accessor_declarations_are_checked(backend):
    class UnknownField(Model):
        table_cols = {"name": {"type": "varchar", "size": 5}}
        accessors = {"nope": {"get": len}}

    class UnknownKind(Model):
        table_cols = {"name": {"type": "varchar", "size": 5}}
        accessors = {"name": {"fetch": len}}

    with pytest.raises(ConfigurationError):
        UnknownField(backend, auto_create=False)
    with pytest.raises(ConfigurationError):
        UnknownKind(backend, auto_create=False)


def test_declared_accessors_and_sequences(backend):
    tickets = Tickets(backend)
    rec = tickets.fetch_new({"title": "broken build"})
    rec.code = "ab12"
    assert rec.get_raw("code") == "AB12"
    assert rec.title == "Broken Build"
    assert rec.save().ok
    assert rec.number == 1

    second = tickets.fetch_new({"title": "flaky test", "number": 40})
    second.save().raise_for_status()
    assert second.number == 40
    third = tickets.fetch_new({"title": "slow query"})
    third.save().raise_for_status()
    assert third.number == 2

    stored = tickets.fetch(rec.id)
    assert stored.code == "AB12"
    assert stored.to_dict()["title"] == "Broken Build"


def test_sequence_columns_are_not_required_by_filters(backend):
    class Invoices(Model):
        table_cols = {"serial": {"type": "int", "required": True}}
        sequence_cols = ["serial"]

    invoices = Invoices(backend)
    assert invoices.sequence_cols == {"serial": "invoices__serial"}
    rec = invoices.fetch_new()
    rec.filter()
    assert rec.save().ok
    assert rec.serial == 1


def test_fetch_variants(seeded):
    users = seeded.get("users")
    assert users.fetch(None) is None
    assert users.fetch("") is None
    assert users.fetch(99) is None
    assert users.fetch_one({"handle = ?": "gir"}).id == 3
    assert users.fetch_one({"handle = ?": "nobody"}) is None
    assert [rec.handle for rec in users.fetch_all(order="users.id DESC")] == ["gir", "dib", "zim"]

    by_handle = users.fetch_assoc(key="handle")
    assert by_handle.keyed["dib"].id == 2


def test_fetch_all_with_cols_group_having_and_bind(seeded):
    nodes = seeded.get("nodes")
    counts = nodes.fetch_all(
        cols=["area_id", "COUNT(id) AS n"],
        group="area_id",
        having="COUNT(id) > 4",
        order="area_id",
    )
    assert [(rec.area_id, rec.n) for rec in counts] == [(1, 5), (2, 5)]

    bound = nodes.fetch_all(where="nodes.area_id = :area", bind={"area": 1})
    assert [rec.id for rec in bound] == [2, 4, 6, 8, 10]

    narrow = nodes.fetch_all(cols="id, subj", page=1)
    assert narrow[0].body is None
    assert narrow[0].subj.startswith("Subject Line 1")


def test_fetch_new_uses_defaults(seeded):
    meta = seeded.get("metas").fetch_new({"node_id": 1})
    assert meta.status is RecordStatus.NEW
    assert meta.comment_count == 0
    assert meta.created is not None
    assert meta.get_changed() == ["node_id"]


def test_new_record_is_clean(seeded):
    rec = seeded.get("users").new_record({"id": 1, "handle": "zim"})
    assert rec.status is RecordStatus.CLEAN
    assert rec.get_changed() == []
    assert seeded.get("users").new_record(rec) is rec


def test_count_pages_and_deletes(seeded):
    nodes = seeded.get("nodes")
    assert nodes.count_pages() == {"count": 10, "pages": 1}
    assert nodes.count_pages({"area_id = ?": 2}) == {"count": 5, "pages": 1}

    assert nodes.delete(nodes.fetch_new()) == 0
    assert nodes.delete_where("id > 8") == 2
    assert nodes.count_pages()["count"] == 8


def test_update_writes_only_changed_columns(seeded, backend):
    users = seeded.get("users")
    rec = users.fetch(1)
    rec.handle = "zimbo"
    backend.clear_profile()
    rec.save().raise_for_status()
    statements = [stats.label for stats in backend.get_profile()]
    assert len(statements) == 1
    assert statements[0].startswith("UPDATE users SET handle = :handle, updated = :updated WHERE id = '1'")


class Profiles(Model):
    table_cols = {
        "prefs": {"type": "clob"},
        "labels": {"type": "varchar", "size": 255},
    }
    serialize_cols = ["prefs", "labels"]


def test_serialized_columns_round_trip(backend):
    profiles = Profiles(backend)
    rec = profiles.fetch_new({"prefs": {"theme": "dark", "size": 3}, "labels": ["a", "b"]})
    assert rec.save().ok
    assert rec.prefs == {"theme": "dark", "size": 3}

    raw = backend.query("SELECT prefs, labels FROM profiles").fetchone()
    assert raw == {"prefs": '{"theme": "dark", "size": 3}', "labels": '["a", "b"]'}

    stored = profiles.fetch(rec.id)
    assert stored.labels == ["a", "b"]
    assert stored.get_changed() == []

    stored.labels.append("c")
    assert stored.get_changed() == ["labels"]
    stored.labels = stored.labels
    stored.save().raise_for_status()
    assert profiles.fetch(rec.id).labels == ["a", "b", "c"]

    empty = profiles.fetch_new()
    empty.save().raise_for_status()
    assert profiles.fetch(empty.id).prefs is None


def test_serialized_columns_must_be_table_columns(backend):
    class Broken(Model):
        table_cols = {"name": {"type": "varchar", "size": 5}}
        serialize_cols = ["extras"]

    with pytest.raises(ConfigurationError):
        Broken(backend, auto_create=False)


def test_loaded_rows_go_through_set_accessors(backend):
    tickets = Tickets(backend)
    row = tickets.table.insert({"title": "raw row", "code": "low1"})
    rec = tickets.fetch(row["id"])
    assert rec.get_raw("code") == "LOW1"
    assert rec.status is RecordStatus.CLEAN
    assert rec.get_changed() == []
