"""Tests for sync dispatch and store selection."""

from unittest.mock import patch

import pytest

from scripts.lib import supabase_client
from scripts.lib.errors import ValidationError
from scripts.lib.store import MemoryStore
from scripts.sync_runner import SYNC_TYPES, SourceClients, build_store, dispatch_sync
from tests.conftest import FakeBooksClient, FakeGraphClient, FakePeopleClient, employee


@pytest.fixture
def clients():
    return SourceClients(
        zoho_books=FakeBooksClient(contacts=[{"contact_id": "c1", "company_name": "Acme"}]),
        zoho_people=FakePeopleClient(employees=[employee(1, "asha@x.com", "Asha")]),
        microsoft=FakeGraphClient(),
    )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, store, clients):
        with pytest.raises(ValidationError) as exc:
            await dispatch_sync("invoices", store, clients)
        assert exc.value.code == "INVALID_SYNC_TYPE"
        assert store.count("sync_logs") == 0

    @pytest.mark.asyncio
    async def test_routes_to_books(self, store, clients):
        result = await dispatch_sync("contacts", store, clients)
        assert result["sync_log"]["created"] == 1
        assert store.find_one("clients", {"zoho_contact_id": "c1"})["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_all_runs_people_syncs_in_order(self, store, clients, today):
        result = await dispatch_sync("all", store, clients, today=today)
        assert list(result["results"]) == ["employees", "leaves", "holidays"]
        types = [log["sync_type"] for log in store.find_many("sync_logs", order_by="id")]
        assert len(types) == 3

    def test_known_types(self):
        assert "microsoft_users" in SYNC_TYPES
        assert len(SYNC_TYPES) == 9


class TestBuildStore:
    def test_memory_when_supabase_missing(self):
        with patch.object(supabase_client, "SUPABASE_URL", None):
            assert isinstance(build_store(), MemoryStore)

    def test_memory_flag_wins(self):
        with patch.object(supabase_client, "SUPABASE_URL", "https://x.supabase.co"), \
                patch.object(supabase_client, "SUPABASE_KEY", "key"):
            assert isinstance(build_store(memory=True), MemoryStore)
