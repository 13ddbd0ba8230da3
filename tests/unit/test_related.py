from __future__ import annotations

import pytest

from tablemapper.errors import ConfigurationError, UnknownRelationError
from tablemapper.example import TAG_NAMES, node_tag_names
from tablemapper.model import (
    BelongsTo,
    Catalog,
    Collection,
    HasMany,
    HasManyThrough,
    HasOne,
    HasOneOrNull,
    Model,
    RecordStatus,
)
from tablemapper.model.related import EAGER_KEY, qualified_cols


def _statements(backend) -> int:
    return len(backend.get_profile())


def test_bound_columns_follow_naming_conventions(seeded):
    nodes = seeded.get("nodes")

    area = nodes.get_related("area")
    assert isinstance(area, BelongsTo)
    assert (area.native_col, area.foreign_col) == ("area_id", "id")

    meta = nodes.get_related("meta")
    assert isinstance(meta, HasOne)
    assert (meta.native_col, meta.foreign_col) == ("id", "node_id")

    tags = nodes.get_related("tags")
    assert isinstance(tags, HasManyThrough)
    assert (tags.through_native_col, tags.through_foreign_col) == ("node_id", "tag_id")
    assert tags.to_many and not meta.to_many

    assert nodes.get_related("tags") is tags


def test_unbound_and_unknown_relations(seeded):
    with pytest.raises(UnknownRelationError):
        seeded.get("nodes").get_related("comments")
    with pytest.raises(ConfigurationError):
        HasMany("nodes").foreign
    with pytest.raises(ConfigurationError):
        HasOne("metas", fetch="some")


def test_lazy_loading_costs_one_query_per_record(seeded, backend):
    coll = seeded.get("nodes").fetch_all()
    assert _statements(backend) == 1

    names = {node.id: [tag.name for tag in node.tags] for node in coll}

    assert _statements(backend) == 1 + len(coll)
    assert names[1] == sorted(node_tag_names(1))
    assert names[2] == sorted(node_tag_names(2))


def test_eager_loading_costs_one_query_per_relation(seeded, backend):
    coll = seeded.get("nodes").fetch_all(eager=["taggings", "tags"])
    assert _statements(backend) == 3

    for node in coll:
        assert node.related("tags").is_loaded
        assert [tag.name for tag in node.tags] == sorted(node_tag_names(node.id))
        assert len(node.taggings) == len(node_tag_names(node.id))
        assert all(EAGER_KEY not in tag.to_dict() for tag in node.tags)

    assert _statements(backend) == 3


def test_eager_to_one_relations_join_into_the_main_query(seeded, backend):
    coll = seeded.get("nodes").fetch_all(eager="area, author, meta")
    assert _statements(backend) == 1

    first, second = coll[0], coll[1]
    assert first.area.name == "Earth"
    assert first.author.handle == "zim"
    assert second.area.name == "Irk"
    assert second.author.handle == "dib"
    assert first.meta.node_id == first.id
    assert first.meta.status is RecordStatus.CLEAN
    assert _statements(backend) == 1

    # native columns stay unprefixed
    assert first.subj.startswith("Subject Line 1: ")
    assert first.id == 1


def test_lazy_belongs_to_and_has_one(seeded, backend):
    node = seeded.get("nodes").fetch(2)
    backend.clear_profile()
    assert node.area.name == "Irk"
    assert node.meta.id == 2
    assert node.area.name == "Irk"
    assert _statements(backend) == 2


def test_missing_belongs_to_is_none(seeded):
    nodes = seeded.get("nodes")
    node = nodes.fetch_new({"subj": "Orphan"})
    assert node.area is None
    assert node.author is None

    node.save().raise_for_status()
    fetched = nodes.fetch(node.id, eager=["area"])
    assert fetched.area is None


def test_missing_has_one_is_an_unsaved_placeholder(seeded, backend):
    nodes = seeded.get("nodes")
    metas = seeded.get("metas")
    metas.delete_where({"node_id = ?": 3})

    node = nodes.fetch(3)
    placeholder = node.meta
    assert placeholder.status is RecordStatus.NEW
    assert placeholder.id is None
    assert placeholder.comment_count == 0

    node.subj = "Changed subject"
    result = node.save()
    assert result.ok
    assert "meta" not in result.related
    assert metas.count_pages()["count"] == 9

    joined = nodes.fetch(3, eager="meta")
    assert joined.related("meta").is_loaded
    assert joined.meta.status is RecordStatus.NEW


def test_touched_has_one_placeholder_is_linked_and_saved(seeded):
    nodes = seeded.get("nodes")
    metas = seeded.get("metas")
    metas.delete_where({"node_id = ?": 4})

    node = nodes.fetch(4)
    node.meta.comment_count = 5
    assert node.save().ok
    meta = metas.fetch_one({"node_id = ?": 4})
    assert meta.comment_count == 5


def test_has_one_or_null(backend):
    class Owners(Model):
        table_cols = {"name": {"type": "varchar", "size": 10}}
        related = {"pet": HasOneOrNull("pets")}

    class Pets(Model):
        table_cols = {"owner_id": {"type": "int"}, "name": {"type": "varchar", "size": 10}}
        related = {"owner": BelongsTo("owners")}

    catalog = Catalog(backend, [Owners, Pets])
    owners = catalog.get("owners")
    ann = owners.fetch_new({"name": "ann"})
    ann.save().raise_for_status()

    assert owners.fetch(ann.id).pet is None
    assert owners.fetch(ann.id, eager="pet").pet is None

    ann.pet = {"name": "rex"}
    assert ann.save().ok
    rex = owners.fetch(ann.id).pet
    assert rex.name == "rex"
    assert rex.owner_id == ann.id
    assert rex.owner.name == "ann"


def test_saving_children_sets_their_foreign_key(seeded):
    areas = seeded.get("areas")
    area = areas.fetch_new({"name": "Vortian", "user_id": 3})
    area.nodes = [{"subj": "First post"}, {"subj": "Second post"}]

    result = area.save()
    assert result.ok
    assert [r.status for r in result.related["nodes"]] == [RecordStatus.INSERTED, RecordStatus.INSERTED]

    stored = areas.fetch(area.id, eager="nodes")
    assert [n.subj for n in stored.nodes] == ["First post", "Second post"]
    assert {n.area_id for n in stored.nodes} == {area.id}


def test_child_failure_makes_the_parent_result_fail(seeded):
    areas = seeded.get("areas")
    area = areas.fetch(1)
    area.nodes.append({"subj": "no"})

    result = area.save()
    assert area.status is RecordStatus.CLEAN
    assert not result.ok
    assert result.kind == "failed"
    assert result.error is None
    failed = [r for r in result.related["nodes"] if not r.ok]
    assert len(failed) == 1
    assert failed[0].kind == "invalid"


def test_loaded_cycles_are_saved_once(seeded):
    node = seeded.get("nodes").fetch(1)
    node.meta.node  # meta -> node loads a second copy of the node
    node.meta.related("node").set(node)
    node.subj = "Cycle safe"
    assert node.save().ok
    assert seeded.get("nodes").fetch(1).subj == "Cycle safe"


def test_wrap_accepts_records_dicts_and_lists(seeded):
    nodes = seeded.get("nodes")
    meta = nodes.get_related("meta")
    existing = seeded.get("metas").fetch(1)
    assert meta.wrap(existing) is existing
    assert meta.wrap(None) is None
    assert meta.wrap({"id": 7, "node_id": 7}).status is RecordStatus.CLEAN

    tags = nodes.get_related("tags").wrap([{"id": 1, "name": "foo"}])
    assert isinstance(tags, Collection)
    assert tags[0].name == "foo"


def test_nested_relation_data_loads_without_queries(seeded, backend):
    nodes = seeded.get("nodes")
    rec = nodes.new_record(
        {
            "id": 1,
            "subj": "Given",
            "area": {"id": 2, "name": "Earth"},
            "tags": [{"id": 1, "name": TAG_NAMES[0]}],
        }
    )
    assert rec.area.name == "Earth"
    assert [tag.name for tag in rec.tags] == ["foo"]
    assert _statements(backend) == 0


def test_eager_to_many_on_fetch_one(seeded, backend):
    tag = seeded.get("tags").fetch_one({"tags.name = ?": "foo"}, eager="nodes")
    assert _statements(backend) == 2
    expected = [i for i in range(1, 11) if "foo" in node_tag_names(i)]
    assert sorted(node.id for node in tag.nodes) == expected


def test_qualified_cols_leaves_expressions_alone():
    assert qualified_cols("t", ["id", "COUNT(*) AS n"]) == ["t.id AS id", "COUNT(*) AS n"]


def test_belongs_to_saves_the_parent_without_linking(seeded):
    nodes = seeded.get("nodes")
    node = nodes.fetch(1)
    node.area = {"name": "Vortian"}

    result = node.save()

    assert result.ok
    assert result.related["area"].status is RecordStatus.INSERTED
    assert node.area.id == 3
    assert nodes.fetch(1).area_id == 2
