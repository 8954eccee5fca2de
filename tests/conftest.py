"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import MagicMock
from datetime import datetime, timezone
from typing import Generator

from models.material import Warehouse, WarehouseType
from repositories import InMemoryRepository, set_repository

HOME_WAREHOUSE_ID = "wh-home"
PRODUCTION_WAREHOUSE_ID = "wh-production"

# Module singletons that cache a repository
SERVICE_SINGLETONS = [
    ("services.material_availability_service", "_availability_service"),
    ("services.lot_allocation_service", "_lot_allocation_service"),
    ("services.production_service", "_production_service"),
    ("services.fulfillment_service", "_fulfillment_service"),
    ("services.order_status_service", "_order_status_service"),
    ("services.order_timeline_service", "_timeline_service"),
    ("services.deficit_service", "_deficit_service"),
    ("services.inventory_service", "_inventory_service"),
    ("services.material_service", "_material_service"),
    ("services.recipe_service", "_recipe_service"),
    ("services.ingestion_service", "_ingestion_service"),
]


def reset_singletons():
    import importlib
    for module_name, attr in SERVICE_SINGLETONS:
        setattr(importlib.import_module(module_name), attr, None)


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None):
        self.data = data


class MockSupabaseQuery:
    """
    Mock query builder with chainable methods.

    eq/in_/gt filters apply to select, update and delete, so a guarded write
    whose filter no longer matches returns empty data like PostgREST does.
    """

    def __init__(
        self,
        table: "MockSupabaseTable",
        action: str = "select",
        payload=None,
        on_conflict=None,
        ignore_duplicates: bool = False,
    ):
        self._table = table
        self._action = action
        self._payload = payload
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        self._filters = []
        self._limit = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def gt(self, column, value):
        self._filters.append(lambda row: float(row.get(column) or 0) > float(value))
        return self

    def order(self, column, **kwargs):
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _stamp(self, item: dict) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        row = {"id": f"{self._table.name}-{len(self._table.rows) + 1}", "created_at": now, "updated_at": now}
        row.update(self._table.defaults)
        row.update(item)
        return row

    def execute(self) -> MockSupabaseResponse:
        if self._table.error is not None:
            raise self._table.error

        if self._action == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            created = []
            for item in items:
                row = self._stamp(item)
                self._table.rows.append(row)
                created.append(dict(row))
            return MockSupabaseResponse(created)

        if self._action == "upsert":
            key = self._on_conflict or "id"
            for row in self._table.rows:
                if row.get(key) == self._payload.get(key):
                    if self._ignore_duplicates:
                        return MockSupabaseResponse([])
                    row.update(self._payload)
                    return MockSupabaseResponse([dict(row)])
            row = self._stamp(self._payload)
            self._table.rows.append(row)
            return MockSupabaseResponse([dict(row)])

        matched = [row for row in self._table.rows if all(f(row) for f in self._filters)]
        if self._action == "update":
            for row in matched:
                row.update(self._payload)
        if self._action == "delete":
            removed = {id(row) for row in matched}
            self._table.rows = [row for row in self._table.rows if id(row) not in removed]
        if self._limit is not None:
            matched = matched[:self._limit]
        return MockSupabaseResponse([dict(row) for row in matched])


class MockSupabaseTable:
    """Mock Supabase table holding rows in memory."""

    def __init__(self, name: str, rows: list = None, defaults: dict = None):
        self.name = name
        self.rows = rows or []
        self.defaults = defaults or {}
        self.error = None

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self)

    def insert(self, data):
        return MockSupabaseQuery(self, "insert", data)

    def upsert(self, data, on_conflict=None, ignore_duplicates=False):
        return MockSupabaseQuery(self, "upsert", data, on_conflict, ignore_duplicates)

    def update(self, data):
        return MockSupabaseQuery(self, "update", data)

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockSupabaseClient:
    """Mock Supabase client with configurable tables and RPC results."""

    def __init__(self):
        self._tables = {}
        self._rpc_results = {}
        self.rpc_calls = []
        self.rpc_error = None

    def set_table_data(self, table_name: str, rows: list, defaults: dict = None):
        """Configure rows for a table, plus column defaults applied on insert."""
        self._tables[table_name] = MockSupabaseTable(table_name, [dict(r) for r in rows], defaults)

    def fail_table(self, table_name: str, error: Exception):
        """Make every query on a table raise."""
        self.table(table_name).error = error

    def set_rpc_result(self, function: str, data):
        """Configure what a Postgres function returns."""
        self._rpc_results[function] = data

    def table(self, name: str) -> MockSupabaseTable:
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable(name)
        return self._tables[name]

    def rpc(self, function: str, params: dict):
        self.rpc_calls.append((function, params))
        call = MagicMock()
        if self.rpc_error is not None:
            call.execute.side_effect = self.rpc_error
        else:
            call.execute.return_value = MockSupabaseResponse(self._rpc_results.get(function))
        return call


# ===================
# FIXTURES
# ===================

@pytest.fixture
def repo() -> InMemoryRepository:
    """
    In-memory repository with the two standard warehouses.

    Usage:
        def test_something(repo):
            product = seed_product(repo)
            ...
    """
    repository = InMemoryRepository()
    repository.add_warehouse(Warehouse(
        id=HOME_WAREHOUSE_ID,
        name="Home",
        type=WarehouseType.HOME,
        priority=0,
    ))
    repository.add_warehouse(Warehouse(
        id=PRODUCTION_WAREHOUSE_ID,
        name="Production center",
        type=WarehouseType.PRODUCTION_CENTER,
        priority=1,
    ))
    return repository


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("orders", [
                {"id": "order-1", "external_id": "P-1", ...}
            ])
            repository = SupabaseRepository(client=mock_supabase)
    """
    return MockSupabaseClient()


@pytest.fixture
def test_client(repo) -> Generator:
    """
    FastAPI TestClient wired to the in-memory repository.

    Service singletons are reset before and after so each test sees
    only its own repository.
    """
    from fastapi.testclient import TestClient
    from main import app

    set_repository(repo)
    reset_singletons()
    try:
        yield TestClient(app)
    finally:
        set_repository(None)
        reset_singletons()
