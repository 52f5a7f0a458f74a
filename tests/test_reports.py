"""Tests for pod financials, monthly P&L and utilization."""

from datetime import date

import pytest

from scripts.lib.errors import NotFoundError, ValidationError
from scripts.pod_financials import build_pod_financials, prorated_cost
from scripts.profit_loss import build_profit_loss
from scripts.utilization import (
    calculate_utilization,
    store_utilization,
    store_utilization_for_last_months,
    utilization_history,
    utilization_summary,
)

SEPT = (date(2025, 9, 1), date(2025, 9, 30))


@pytest.fixture
def pod_store(store):
    leader = store.create("people", {"name": "Boss", "employee_code": "E1"})
    asha = store.create("people", {"name": "Asha", "employee_code": "E2"})
    ravi = store.create("people", {"name": "Ravi", "employee_code": "E3"})
    client = store.create("clients", {"name": "Acme"})
    project = store.create("projects", {"name": "Portal", "client_id": client["id"]})
    pod = store.create("pods", {"name": "Digital", "leader_id": leader["id"], "status": "active"})

    store.create("pod_projects", {"pod_id": pod["id"], "project_id": project["id"],
                                  "start_date": date(2025, 1, 1), "end_date": None})
    # Joins mid-month on the 15th
    store.create("pod_members", {"pod_id": pod["id"], "person_id": asha["id"], "allocation_pct": 100,
                                 "start_date": date(2025, 9, 15), "end_date": None})
    # Membership covers a single weekend
    store.create("pod_members", {"pod_id": pod["id"], "person_id": ravi["id"], "allocation_pct": 50,
                                 "start_date": date(2025, 9, 6), "end_date": date(2025, 9, 7)})

    store.create("project_costs", {"project_id": project["id"], "period_month": date(2025, 9, 1), "amount": 50000})
    store.create("project_costs", {"project_id": project["id"], "period_month": date(2025, 10, 1), "amount": 99999})

    for month in (date(2025, 8, 1), date(2025, 9, 1), date(2025, 10, 1)):
        store.create("person_salaries", {"person_id": asha["id"], "month": month, "total": 30000})
    store.create("person_salaries", {"person_id": ravi["id"], "month": date(2025, 9, 1), "total": 20000})

    store.create("timesheet_entries", {"person_id": asha["id"], "project_id": project["id"],
                                       "work_date": date(2025, 9, 10), "hours_logged": 8, "is_billable": True})
    store.create("timesheet_entries", {"person_id": asha["id"], "project_id": project["id"],
                                       "work_date": date(2025, 9, 15), "hours_logged": 8, "is_billable": True})
    store.create("timesheet_entries", {"person_id": asha["id"], "project_id": None,
                                       "work_date": date(2025, 9, 16), "hours_logged": 4, "is_billable": False})
    return store, pod, project, asha, ravi


class TestProratedCost:
    def test_mid_month_join(self):
        cost = prorated_cost(30000, 100, (date(2025, 9, 15), None), SEPT, date(2025, 9, 1))
        assert cost == pytest.approx(16000)

    def test_empty_window_costs_nothing(self):
        cost = prorated_cost(30000, 100, (date(2025, 10, 1), None), SEPT, date(2025, 9, 1))
        assert cost == 0


class TestPodFinancials:
    def test_single_month_report(self, pod_store):
        store, pod, project, asha, ravi = pod_store
        report = build_pod_financials(store, pod["id"], *SEPT)

        assert report["pod"]["leader"]["name"] == "Boss"
        assert report["period"]["months"] == ["2025-09-01"]

        revenue = report["financials"]["revenue"]
        assert revenue["total"] == 50000
        assert revenue["by_month"] == {"2025-09-01": 50000}
        assert revenue["by_project"][project["id"]] == {"name": "Portal", "client": "Acme", "total": 50000}

        costs = report["financials"]["costs"]
        ravi_cost = 20000 * 0.5 * 2 / 30
        assert costs["by_month"]["2025-09-01"] == pytest.approx(16000 + ravi_cost)
        assert costs["overheads"] == 0
        gross = report["financials"]["gross_profit"]
        assert gross["amount"] == pytest.approx(50000 - 16000 - ravi_cost)
        assert report["financials"]["net_profit"]["amount"] == pytest.approx(gross["amount"])

    def test_member_utilization_uses_effective_window(self, pod_store):
        store, pod, project, asha, ravi = pod_store
        members = {m["person"]["id"]: m for m in build_pod_financials(store, pod["id"], *SEPT)["utilization"]["by_member"]}

        a = members[asha["id"]]
        # Sep 15-30 has 12 business days; the Sep 10 entry is outside the window
        assert a["working_hours"] == 96
        assert a["billable_hours"] == 8
        assert a["non_billable_hours"] == 4
        assert a["unutilized_hours"] == 84
        assert a["utilization_pct"] == pytest.approx(12.5)
        assert a["projects"] == {project["id"]: {"name": "Portal", "hours": 8}}

        r = members[ravi["id"]]
        assert r["working_hours"] == 0
        assert r["utilization_pct"] == 0
        assert r["billable_pct"] == 0

    def test_multi_month_proration(self, pod_store):
        store, pod, _, asha, _ = pod_store
        report = build_pod_financials(store, pod["id"], date(2025, 8, 1), date(2025, 10, 31))

        assert report["period"]["months"] == ["2025-08-01", "2025-09-01", "2025-10-01"]
        by_month = report["financials"]["costs"]["by_month"]
        assert by_month["2025-08-01"] == 0
        assert by_month["2025-10-01"] == pytest.approx(30000)
        assert report["financials"]["revenue"]["total"] == 50000 + 99999

    def test_overhead_policy_reduces_net_profit(self, pod_store):
        store, pod, *_ = pod_store

        def flat_overhead(pod_row, months):
            return {m.isoformat(): 1000.0 for m in months}

        report = build_pod_financials(store, pod["id"], *SEPT, overhead_policy=flat_overhead)
        financials = report["financials"]
        assert financials["costs"]["overheads"] == 1000
        assert financials["net_profit"]["amount"] == pytest.approx(financials["gross_profit"]["amount"] - 1000)

    def test_no_revenue_means_zero_margin(self, store):
        pod = store.create("pods", {"name": "Empty"})
        report = build_pod_financials(store, pod["id"], *SEPT)
        assert report["financials"]["gross_profit"]["margin_pct"] == 0
        assert report["utilization"]["summary"]["overall_utilization_pct"] == 0

    def test_unknown_pod(self, store):
        with pytest.raises(NotFoundError):
            build_pod_financials(store, 404, *SEPT)

    def test_reversed_range_rejected(self, store):
        with pytest.raises(ValidationError):
            build_pod_financials(store, 1, date(2025, 10, 1), date(2025, 9, 1))


class TestProfitLoss:
    def test_monthly_profit_and_loss(self, store):
        project = store.create("projects", {"name": "Portal"})
        store.create("project_costs", {"project_id": project["id"], "period_month": date(2025, 9, 1), "amount": 100000})
        store.create("person_salaries", {"person_id": 1, "month": date(2025, 9, 1), "total": 20000, "is_support_staff": True})
        store.create("person_salaries", {"person_id": 2, "month": date(2025, 9, 1), "total": 40000, "is_support_staff": False})
        store.create("person_salaries", {"person_id": 2, "month": date(2025, 8, 1), "total": 40000, "is_support_staff": False})
        store.create("expenses", {"expense_date": date(2025, 9, 12), "amount": 5000, "include_in_calculation": True})
        store.create("expenses", {"expense_date": date(2025, 9, 13), "amount": 7000, "include_in_calculation": False})
        store.create("bills", {"cf_billed_for_month_unformatted": date(2025, 9, 1), "sub_total": 10000,
                               "total": 11800, "include_in_calculation": True})
        store.create("bills", {"cf_billed_for_month_unformatted": date(2025, 9, 1), "sub_total": None,
                               "total": 2000, "include_in_calculation": True})
        store.create("bills", {"cf_billed_for_month_unformatted": date(2025, 8, 1), "total": 999,
                               "include_in_calculation": True})

        report = build_profit_loss(store, "2025-09")

        assert report["overheads"]["breakdown"] == {
            "support_staff_salaries": 20000, "expenses": 5000, "bills": 12000,
        }
        assert report["overheads"]["total"] == 37000
        assert report["operational_costs"] == {"total": 40000, "staff_count": 1}
        assert report["summary"]["revenue"] == 100000
        assert report["summary"]["total_costs"] == 77000
        assert report["summary"]["profit_loss"] == 23000
        assert report["summary"]["profit_margin_percentage"] == pytest.approx(23.0)

    @pytest.mark.parametrize("month", ["2025-9", "2025-13", "september", ""])
    def test_bad_month_rejected(self, store, month):
        with pytest.raises(ValidationError):
            build_profit_loss(store, month)


class TestUtilization:
    def test_holidays_and_leave_reduce_working_hours(self, store):
        person = store.create("people", {"name": "Asha"})
        store.create("holidays", {"date": date(2025, 10, 2), "name": "Gandhi Jayanti", "type": "public"})
        store.create("holidays", {"date": date(2025, 10, 21), "name": "Optional", "type": "restricted"})
        # Spans into November: only the October part counts
        store.create("leaves", {"person_id": person["id"], "status": "approved", "days": 4,
                                "start_date": date(2025, 10, 30), "end_date": date(2025, 11, 2)})
        store.create("leaves", {"person_id": person["id"], "status": "rejected", "days": 1,
                                "start_date": date(2025, 10, 6), "end_date": date(2025, 10, 6)})
        store.create("allocations", {"person_id": person["id"], "period_month": date(2025, 10, 1),
                                     "hours_billable": 100, "hours_nonbillable": 20})

        data = calculate_utilization(store, person["id"], date(2025, 10, 17))

        assert data["holiday_days"] == 1
        assert data["leave_days"] == 2
        assert data["working_hours"] == 160 - 8 - 16
        assert data["worked_hours"] == 120
        assert data["utilization_pct"] == pytest.approx(120 / 136 * 100)
        assert data["billable_utilization"] == pytest.approx(100 / 136 * 100)

    def test_store_utilization_upserts(self, store):
        person = store.create("people", {"name": "Asha"})
        store_utilization(store, person["id"], date(2025, 10, 1))
        store.create("allocations", {"person_id": person["id"], "period_month": date(2025, 10, 1),
                                     "hours_billable": 80, "hours_nonbillable": 0})
        store_utilization(store, person["id"], date(2025, 10, 1))

        rows = store.find_many("monthly_utilization", {"person_id": person["id"]})
        assert len(rows) == 1
        assert rows[0]["billable_hours"] == 80

        history = utilization_history(store, person["id"], months=3, today=date(2025, 11, 5))
        assert len(history["history"]) == 1
        assert history["averages"]["utilization_pct"] == pytest.approx(50.0)

    def test_unknown_person(self, store):
        with pytest.raises(NotFoundError):
            calculate_utilization(store, 404, date(2025, 10, 1))

    def test_last_months_recalculates_each_month(self, store):
        person = store.create("people", {"name": "Asha"})
        # Left before August: only counted for July
        store.create("people", {"name": "Ravi", "end_date": date(2025, 7, 31)})

        results = store_utilization_for_last_months(store, months=3, today=date(2025, 9, 20))

        assert [r["month"] for r in results] == [date(2025, 9, 1), date(2025, 8, 1), date(2025, 7, 1)]
        assert [r["success"] for r in results] == [1, 1, 2]
        months = {r["month"] for r in store.find_many("monthly_utilization", {"person_id": person["id"]})}
        assert months == {date(2025, 7, 1), date(2025, 8, 1), date(2025, 9, 1)}


class TestUtilizationSummary:
    def test_sorted_with_averages_and_bands(self, store):
        people = {}
        for name, pct, billable in [("Low", 50, 40), ("High", 120, 110), ("Mid", 70, 60), ("Full", 100, 90)]:
            people[name] = store.create("people", {"name": name, "email": f"{name.lower()}@acme.in"})
            store.create("monthly_utilization", {
                "person_id": people[name]["id"], "month": date(2025, 9, 1),
                "utilization_pct": pct, "billable_utilization": billable,
            })
        store.create("monthly_utilization", {
            "person_id": people["Low"]["id"], "month": date(2025, 8, 1), "utilization_pct": 10,
        })

        report = utilization_summary(store, date(2025, 9, 18))

        assert report["month"] == date(2025, 9, 1)
        assert [e["name"] for e in report["employees"]] == ["High", "Full", "Mid", "Low"]
        assert report["employees"][0]["email"] == "high@acme.in"
        summary = report["summary"]
        assert summary["total_employees"] == 4
        assert summary["avg_utilization"] == pytest.approx(85.0)
        assert summary["avg_billable"] == pytest.approx(75.0)
        assert (summary["underutilized"], summary["optimal"], summary["overutilized"]) == (1, 2, 1)

    def test_empty_month(self, store):
        summary = utilization_summary(store, date(2025, 9, 1))["summary"]
        assert summary["total_employees"] == 0
        assert summary["avg_utilization"] == 0
