"""Tests for the bill-details background job."""

from datetime import date

import pytest

from scripts.bill_details_sync import (
    JOBS_TABLE,
    cancel_job,
    get_job_status,
    process_bill_details,
    start_bill_details_job,
)
from scripts.lib.errors import JobNotFoundError, JobStateError, NotConnectedError, ValidationError
from scripts.lib.jobs import JobRegistry
from tests.conftest import FakeBooksClient


def add_bill(store, zoho_id, number, bill_date=date(2025, 9, 10), billed_for=None, status="pending"):
    return store.create("bills", {
        "zoho_bill_id": zoho_id,
        "bill_number": number,
        "bill_date": bill_date,
        "cf_billed_for_month_unformatted": billed_for,
        "total": 1180.0,
        "details_sync_status": status,
    })


DETAIL_B1 = {
    "bill_id": "b1",
    "sub_total": "1000",
    "tax_total": "180",
    "line_items": [
        {"line_item_id": "li1", "name": "Laptop", "item_total": 600, "line_item_taxes": [{"tax_amount": 108}]},
        {"line_item_id": "li2", "name": "Mouse", "item_total": 400},
    ],
}


async def run_job(store, client, registry=None, **kwargs):
    registry = registry or JobRegistry()
    started = await start_bill_details_job(store, client, registry, today=date(2025, 10, 15), **kwargs)
    await registry.wait(started["job_id"])
    return started["job_id"]


class TestBillDetailsJob:
    @pytest.mark.asyncio
    async def test_completes_and_replaces_line_items(self, store):
        b1 = add_bill(store, "b1", "BILL-1")
        b2 = add_bill(store, "b2", "BILL-2")
        store.create("bill_line_items", {"bill_id": b1["id"], "zoho_line_item_id": "stale"})
        store.create("bill_line_items", {"bill_id": b2["id"], "zoho_line_item_id": "kept"})
        client = FakeBooksClient(details={"b1": DETAIL_B1})

        registry = JobRegistry()
        started = await start_bill_details_job(store, client, registry, today=date(2025, 10, 15))
        assert started["message"] == "Bill details sync started"
        assert store.find_one(JOBS_TABLE, {"id": started["job_id"]})["status"] == "running"
        await registry.wait(started["job_id"])

        status = get_job_status(store, started["job_id"])
        assert status["status"] == "completed"
        assert (status["total"], status["processed"], status["success_count"]) == (2, 2, 2)
        assert status["progress_percentage"] == 100
        assert status["completed_at"] is not None

        bill = store.find_one("bills", {"id": b1["id"]})
        assert bill["details_sync_status"] == "synced"
        assert bill["sub_total"] == 1000.0
        items = store.find_many("bill_line_items", {"bill_id": b1["id"]})
        assert sorted(i["zoho_line_item_id"] for i in items) == ["li1", "li2"]
        # No line items in the response: existing ones stay
        kept = store.find_many("bill_line_items", {"bill_id": b2["id"]})
        assert [i["zoho_line_item_id"] for i in kept] == ["kept"]

    @pytest.mark.asyncio
    async def test_partial_failure_still_completes(self, store):
        add_bill(store, "b1", "BILL-1")
        b2 = add_bill(store, "b2", "BILL-2")
        client = FakeBooksClient(details={"b1": DETAIL_B1}, fail_on={"b2"})

        job_id = await run_job(store, client)

        status = get_job_status(store, job_id)
        assert status["status"] == "completed"
        assert (status["success_count"], status["error_count"]) == (1, 1)
        assert status["error_messages"][0].startswith("Failed to sync BILL-2:")
        assert store.find_one("bills", {"id": b2["id"]})["details_sync_status"] == "error"

    @pytest.mark.asyncio
    async def test_all_failures_mark_job_failed(self, store):
        add_bill(store, "b1", "BILL-1")
        client = FakeBooksClient(fail_on={"b1"})

        job_id = await run_job(store, client)

        assert get_job_status(store, job_id)["status"] == "failed"

    @pytest.mark.asyncio
    async def test_no_matching_bills_completes_empty(self, store):
        job_id = await run_job(store, FakeBooksClient())
        status = get_job_status(store, job_id)
        assert status["status"] == "completed"
        assert status["total"] == 0
        assert status["progress_percentage"] == 0

    @pytest.mark.asyncio
    async def test_filters_by_billed_for_month_and_pending(self, store):
        add_bill(store, "in-range", "B-1", billed_for=date(2025, 9, 1))
        add_bill(store, "other-month", "B-2", billed_for=date(2025, 8, 1))
        add_bill(store, "already", "B-3", billed_for=date(2025, 9, 1), status="synced")
        client = FakeBooksClient()

        await run_job(store, client, filter_type="billed_for_month", filter_value="last_month")
        assert client.fetched == ["in-range"]

        client.fetched.clear()
        await run_job(store, client, filter_type="billed_for_month", filter_value="last_month", force_refetch=True)
        assert client.fetched == ["in-range", "already"]

    @pytest.mark.asyncio
    async def test_invalid_filter_type_rejected(self, store):
        with pytest.raises(ValidationError):
            await start_bill_details_job(store, FakeBooksClient(), JobRegistry(), filter_type="due_date")
        assert store.find_many(JOBS_TABLE) == []

    @pytest.mark.asyncio
    async def test_unknown_filter_value_falls_back_to_last_month(self, store):
        add_bill(store, "b1", "BILL-1", bill_date=date(2025, 9, 10))
        add_bill(store, "b2", "BILL-2", bill_date=date(2025, 7, 10))
        client = FakeBooksClient()

        job_id = await run_job(store, client, filter_value="fortnight")

        assert client.fetched == ["b1"]
        assert get_job_status(store, job_id)["status"] == "completed"

    @pytest.mark.asyncio
    async def test_not_connected_creates_no_job(self, store):
        client = FakeBooksClient()
        client.connected = False
        with pytest.raises(NotConnectedError):
            await start_bill_details_job(store, client, JobRegistry())
        assert store.find_many(JOBS_TABLE) == []


class CancellingClient(FakeBooksClient):
    """Cancels the job while the first fetch is in flight."""

    def __init__(self, store, registry, **kwargs):
        super().__init__(**kwargs)
        self.store = store
        self.registry = registry
        self.job_id = None

    async def get_bill(self, bill_id, tokens=None):
        detail = await super().get_bill(bill_id, tokens)
        if len(self.fetched) == 1:
            cancel_job(self.store, self.registry, self.job_id)
        return detail


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_run_drops_in_flight_result(self, store):
        b1 = add_bill(store, "b1", "BILL-1")
        b2 = add_bill(store, "b2", "BILL-2")
        registry = JobRegistry()
        client = CancellingClient(store, registry, details={"b1": DETAIL_B1})

        job = store.create(JOBS_TABLE, {"status": "running", "total_bills": 0, "processed_bills": 0})
        client.job_id = job["id"]
        handle = registry.register(job["id"])
        await process_bill_details(
            store, client, handle, "bill_date", date(2025, 9, 1), date(2025, 9, 30),
        )

        status = get_job_status(store, job["id"])
        assert status["status"] == "cancelled"
        assert status["processed"] == 0
        assert client.fetched == ["b1"]
        assert store.find_one("bills", {"id": b1["id"]})["details_sync_status"] == "pending"
        assert store.find_one("bills", {"id": b1["id"]}).get("sub_total") is None
        assert store.find_one("bills", {"id": b2["id"]})["details_sync_status"] == "pending"
        assert store.find_many("bill_line_items") == []

    def test_cancel_refused_when_not_running(self, store):
        job = store.create(JOBS_TABLE, {"status": "completed"})
        with pytest.raises(JobStateError):
            cancel_job(store, JobRegistry(), job["id"])
        assert store.find_one(JOBS_TABLE, {"id": job["id"]})["status"] == "completed"

    def test_unknown_job(self, store):
        with pytest.raises(JobNotFoundError):
            cancel_job(store, JobRegistry(), 404)
        with pytest.raises(JobNotFoundError):
            get_job_status(store, 404)


class TestJobStatus:
    @pytest.mark.parametrize("processed,expected", [(0, 0), (1, 33), (2, 67), (3, 100)])
    def test_progress_is_rounded_percentage(self, store, processed, expected):
        job = store.create(JOBS_TABLE, {"status": "running", "total_bills": 3, "processed_bills": processed})
        assert get_job_status(store, job["id"])["progress_percentage"] == expected
