"""
Integration tests for tablemapper on PostgreSQL.

These tests run against a real PostgreSQL instance and verify that:
1. The example schema is created and seeded through the models
2. Lazy and eager relation loading issue the expected number of statements
3. Validation, database failures and transactions behave as on SQLite

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import pytest

from tablemapper.config import Settings
from tablemapper.example import build_catalog, node_tag_names, seed
from tablemapper.infrastructure import PostgresBackend, create_backend, pooled_backend
from tablemapper.infrastructure.db_factory import PoolManager
from tablemapper.model import Catalog, RecordStatus

EXPECTED_COUNTS = {"users": 3, "areas": 2, "nodes": 10, "metas": 10, "tags": 6, "taggings": 25}
EAGER_TO_MANY_STATEMENTS = 3

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def pg_seeded(pg_backend: PostgresBackend) -> Catalog:
    catalog = build_catalog(pg_backend)
    seed(catalog)
    pg_backend.clear_profile()
    return catalog


class TestSchema:
    """Table creation and seeding."""

    def test_seed_creates_and_fills_every_table(self, pg_backend: PostgresBackend):
        counts = seed(build_catalog(pg_backend))
        assert counts == EXPECTED_COUNTS
        tables = set(pg_backend.list_tables())
        assert set(EXPECTED_COUNTS) <= tables

    def test_create_backend_connects(self, test_settings: Settings, db_connection_available: bool):
        if not db_connection_available:
            pytest.skip("Database not available for integration tests")
        backend = create_backend(test_settings)
        try:
            assert backend.query("SELECT 1 AS one").fetchone() == {"one": 1}
        finally:
            backend.close()

    def test_pooled_backend_borrows_a_connection(
        self, test_settings: Settings, db_connection_available: bool
    ):
        if not db_connection_available:
            pytest.skip("Database not available for integration tests")
        try:
            with pooled_backend(test_settings) as backend:
                assert backend.query("SELECT 2 AS two").fetchone() == {"two": 2}
        finally:
            PoolManager().close_all()


class TestFetching:
    """Reads, paging and relation loading."""

    def test_paged_fetch_reports_pager_info(self, pg_seeded: Catalog):
        nodes = pg_seeded.get("nodes")
        nodes.paging = 4
        coll = nodes.fetch_all(page=3)
        assert [rec.id for rec in coll] == [9, 10]
        assert coll.get_pager_info() == {"count": 10, "pages": 3, "page": 3, "paging": 4}

    def test_eager_loading_statement_count(self, pg_seeded: Catalog, pg_backend: PostgresBackend):
        coll = pg_seeded.get("nodes").fetch_all(eager=["taggings", "tags", "area", "author"])
        for node in coll:
            assert [tag.name for tag in node.tags] == sorted(node_tag_names(node.id))
            assert node.area.id == node.area_id
            assert node.author.id == node.user_id
        assert len(pg_backend.get_profile()) == EAGER_TO_MANY_STATEMENTS

    def test_lazy_loading_statement_count(self, pg_seeded: Catalog, pg_backend: PostgresBackend):
        coll = pg_seeded.get("nodes").fetch_all()
        for node in coll:
            assert len(node.taggings) == len(node_tag_names(node.id))
        assert len(pg_backend.get_profile()) == 1 + len(coll)

    def test_grouped_fetch(self, pg_seeded: Catalog):
        counts = pg_seeded.get("nodes").fetch_all(
            cols=["area_id", "COUNT(id) AS n"], group="area_id", order="area_id"
        )
        assert [(rec.area_id, rec.n) for rec in counts] == [(1, 5), (2, 5)]


class TestWrites:
    """Saves, failures and transactions."""

    def test_insert_update_delete(self, pg_seeded: Catalog):
        users = pg_seeded.get("users")
        rec = users.fetch_new({"handle": "tak"})
        assert rec.save().status is RecordStatus.INSERTED
        rec.handle = "tak2"
        assert rec.save().status is RecordStatus.UPDATED
        assert users.fetch(rec.id).handle == "tak2"
        rec.delete()
        assert users.fetch(rec.id) is None

    def test_unique_violation_is_reported(self, pg_seeded: Catalog):
        rec = pg_seeded.get("users").fetch_new({"handle": "zim"})
        result = rec.save()
        assert result.kind == "failed"
        assert rec.get_invalid("*") == [result.native_text]

    def test_failed_transaction_rolls_back(self, pg_seeded: Catalog):
        nodes = pg_seeded.get("nodes")
        node = nodes.fetch_new({"subj": "Rolled back", "area_id": 1, "user_id": 1})
        node.taggings = [{"tag_id": 1}, {"tag_id": None}]
        result = node.save_in_transaction()
        assert not result.ok
        assert node.id is None
        assert nodes.count_pages()["count"] == EXPECTED_COUNTS["nodes"]
        assert pg_seeded.get("taggings").count_pages()["count"] == EXPECTED_COUNTS["taggings"]
