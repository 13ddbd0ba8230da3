"""
Example entity types.

A small forum-like schema used by the seeding script, the CLI demo and the
test-suite::

    users ─< areas ─< nodes >─ users
                       │ └─< taggings >─ tags
                       └── metas (one per node)

``build_catalog(backend)`` registers every model; ``seed(catalog)`` fills the
tables with a deterministic data set (3 users, 2 areas, 10 nodes, 10 metas,
6 tags, 2-3 taggings per node).
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict

from tablemapper.infrastructure.backend import SqlBackend
from tablemapper.model import (
    BelongsTo,
    Catalog,
    HasMany,
    HasManyThrough,
    HasOne,
    Model,
    Record,
)
from tablemapper.utils.logging import get_logger

log = get_logger(__name__)

HANDLES = ("zim", "dib", "gir")
AREA_NAMES = ("Irk", "Earth")
TAG_NAMES = ("foo", "bar", "baz", "zab", "rab", "oof")
NODE_COUNT = 10


class Users(Model):
    table_cols = {
        "handle": {"type": "varchar", "size": 32, "required": True, "valid": "word"},
    }
    table_idx = {"handle": "unique"}
    related = {
        "areas": HasMany("areas"),
        "nodes": HasMany("nodes"),
    }
    order = "users.handle"


class Areas(Model):
    table_cols = {
        "user_id": {"type": "int"},
        "name": {"type": "varchar", "size": 127, "required": True},
    }
    table_idx = {"user_id": "normal"}
    related = {
        "author": BelongsTo("users"),
        "nodes": HasMany("nodes"),
    }


class NodeRecord(Record):
    """Node rows expose a short ``teaser`` computed from the body."""

    def _get_teaser(self) -> Any:
        body = self.get_raw("body") or ""
        return body[:20]


class Nodes(Model):
    table_cols = {
        "area_id": {"type": "int"},
        "user_id": {"type": "int"},
        "subj": {"type": "varchar", "size": 255, "required": True},
        "body": {"type": "clob"},
    }
    table_idx = {"area_id": "normal", "user_id": "normal"}
    calculate_cols = ("teaser",)
    record_class = NodeRecord
    related = {
        "area": BelongsTo("areas"),
        "author": BelongsTo("users"),
        "meta": HasOne("metas"),
        "taggings": HasMany("taggings"),
        "tags": HasManyThrough("tags", through="taggings", order="tags.name"),
    }
    filters = {"subj": [("min_length", 3)]}
    invalid_messages = {"subj": "Please enter a subject of at least 3 characters."}


class Metas(Model):
    table_cols = {
        "node_id": {"type": "int", "required": True},
        "last_comment": {"type": "timestamp"},
        "comment_count": {"type": "int", "default": 0},
    }
    table_idx = {"node_id": "unique"}
    related = {"node": BelongsTo("nodes")}


class Tags(Model):
    table_cols = {
        "name": {"type": "varchar", "size": 32, "required": True},
    }
    table_idx = {"name": "unique"}
    related = {
        "taggings": HasMany("taggings"),
        "nodes": HasManyThrough("nodes", through="taggings"),
    }
    order = "tags.name"


class Taggings(Model):
    table_cols = {
        "node_id": {"type": "int", "required": True},
        "tag_id": {"type": "int", "required": True},
    }
    table_idx = {"node_id": "normal", "tag_id": "normal"}
    related = {
        "node": BelongsTo("nodes"),
        "tag": BelongsTo("tags"),
    }


MODELS = (Users, Areas, Nodes, Metas, Tags, Taggings)


def build_catalog(backend: SqlBackend, auto_create: bool = True) -> Catalog:
    """A catalog with every example model registered."""
    return Catalog(backend, MODELS, auto_create=auto_create)


def _digest(i: int) -> str:
    return hashlib.md5(str(i).encode()).hexdigest()


def node_tag_names(i: int) -> tuple:
    """Tag names given to node ``i`` (1-based) by ``seed``."""
    count = 3 if i % 2 == 0 else 2
    return tuple(TAG_NAMES[(i + offset) % len(TAG_NAMES)] for offset in range(count))


def seed(catalog: Catalog) -> Dict[str, int]:
    """
    Insert the example data set.

    Nodes alternate areas and authors; every node gets one meta row and 2
    (odd nodes) or 3 (even nodes) tags.

    Returns
    -------
    dict
        Rows inserted per table.
    """
    users = catalog.get("users")
    for handle in HANDLES:
        users.fetch_new({"handle": handle}).save().raise_for_status()

    areas = catalog.get("areas")
    for i, name in enumerate(AREA_NAMES, start=1):
        areas.fetch_new({"user_id": i, "name": name}).save().raise_for_status()

    nodes = catalog.get("nodes")
    metas = catalog.get("metas")
    for i in range(1, NODE_COUNT + 1):
        node = nodes.fetch_new(
            {
                "subj": f"Subject Line {i}: {_digest(i)[:5]}",
                "body": f"Body for {i} ... {_digest(i)}",
                "area_id": i % 2 + 1,
                "user_id": (i + 1) % 2 + 1,
            }
        )
        node.save().raise_for_status()
        metas.fetch_new({"node_id": node.id}).save().raise_for_status()

    tags = catalog.get("tags")
    tag_ids = {}
    for name in TAG_NAMES:
        tag = tags.fetch_new({"name": name})
        tag.save().raise_for_status()
        tag_ids[name] = tag.id

    taggings = catalog.get("taggings")
    tagging_count = 0
    for i in range(1, NODE_COUNT + 1):
        for name in node_tag_names(i):
            taggings.fetch_new({"node_id": i, "tag_id": tag_ids[name]}).save().raise_for_status()
            tagging_count += 1

    counts = {
        "users": len(HANDLES),
        "areas": len(AREA_NAMES),
        "nodes": NODE_COUNT,
        "metas": NODE_COUNT,
        "tags": len(TAG_NAMES),
        "taggings": tagging_count,
    }
    log.info("Example data seeded", extra={"rows": counts})
    return counts


__all__ = [
    "AREA_NAMES",
    "Areas",
    "HANDLES",
    "MODELS",
    "Metas",
    "NODE_COUNT",
    "NodeRecord",
    "Nodes",
    "TAG_NAMES",
    "Taggings",
    "Tags",
    "Users",
    "build_catalog",
    "node_tag_names",
    "seed",
]
