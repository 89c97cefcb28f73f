"""
Tests for the reporting aggregator: downtime, maintenance costs and staff
efficiency, plus period validation and report bookkeeping.
"""

import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

# Add the project root to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from cmms.models.domain import (
    ComplianceRecord,
    Equipment,
    MaintenanceHistory,
    PartUsage,
    ReportType,
    User,
    WorkOrder,
    WorkOrderStatus,
    WorkOrderType,
)
from cmms.services.reporting import ReportingAggregator
from cmms.utils.clock import FixedClock
from cmms.utils.errors import StoreError, ValidationError

from fakes import (
    FakeComplianceStore,
    FakeEquipmentDirectory,
    FakeHistoryStore,
    FakeReportStore,
    FakeSparePartCatalog,
    FakeUserDirectory,
    FakeWorkOrderStore,
    utc,
)


PERIOD_START = utc(2024, 1, 1)
PERIOD_END = utc(2024, 1, 31, 23, 59, 59)

EQUIPMENT = [
    Equipment(id="eq-1", serial_number="MIC-001", manufacturer_name="Olympus", model_number="CX23"),
    Equipment(id="eq-2", serial_number="CEN-001", manufacturer_name="Eppendorf", model_number="5424"),
]

USERS = [
    User(id="tech-1", username="technician", role="Technician"),
    User(id="tech-2", username="engineer", role="Engineer"),
]

_ids = iter(range(1, 10_000))


def completed(equipment_id="eq-1", hours=2, completed_at=None, wo_type=WorkOrderType.CORRECTIVE, **overrides):
    completed_at = completed_at or utc(2024, 1, 10, 12)
    data = {
        "id": f"wo-{next(_ids)}",
        "equipment_id": equipment_id,
        "issue": "Rotor replacement required",
        "type": wo_type,
        "status": WorkOrderStatus.COMPLETED,
        "reported_at": completed_at - timedelta(hours=hours),
        "completed_at": completed_at,
    }
    data.update(overrides)
    return WorkOrder(**data)


def make_aggregator(work_orders=(), history=(), unit_costs=None, now=None, compliance=()):
    reports = FakeReportStore()
    parts = FakeSparePartCatalog(unit_costs)
    aggregator = ReportingAggregator(
        work_orders=FakeWorkOrderStore(work_orders),
        history=FakeHistoryStore(history),
        reports=reports,
        equipment=FakeEquipmentDirectory(EQUIPMENT),
        parts=parts,
        users=FakeUserDirectory(USERS),
        compliance=FakeComplianceStore(compliance),
        clock=FixedClock(now or utc(2024, 2, 1)),
    )
    return aggregator, reports, parts


class TestDowntimeReport:
    """Test per-equipment downtime aggregation"""

    def test_total_and_average_per_equipment(self):
        aggregator, _, _ = make_aggregator([completed(hours=2), completed(hours=4)])

        report = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END, "admin-1")

        [item] = report.content_data
        assert item["equipment_id"] == "eq-1"
        assert item["total_downtime_hours"] == pytest.approx(6.0)
        assert item["average_downtime_hours"] == pytest.approx(3.0)
        assert item["work_order_count"] == 2
        assert item["equipment_name"] == "Olympus CX23 (S/N: MIC-001)"
        assert report.type == ReportType.PERFORMANCE
        assert "Downtime" in report.title
        assert report.generated_by == "admin-1"

    def test_fractional_hours_use_exact_elapsed_time(self):
        aggregator, _, _ = make_aggregator([completed(hours=1.5)])

        report = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END)

        assert report.content_data[0]["total_downtime_hours"] == pytest.approx(1.5)

    def test_grand_totals_across_equipment(self):
        aggregator, _, _ = make_aggregator([
            completed("eq-1", hours=2),
            completed("eq-1", hours=4),
            completed("eq-2", hours=3),
        ])

        metrics = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END).metrics_data

        assert metrics["total_downtime_hours"] == pytest.approx(9.0)
        assert metrics["total_work_orders"] == 3
        assert metrics["equipment_count"] == 2
        assert metrics["average_downtime_hours"] == pytest.approx(3.0)

    def test_only_corrective_work_orders_in_period_count(self):
        aggregator, _, _ = make_aggregator([
            completed(hours=2),
            completed(hours=10, wo_type=WorkOrderType.PREVENTIVE),
            completed(hours=10, completed_at=utc(2024, 2, 5)),
            completed(hours=10, status=WorkOrderStatus.IN_PROGRESS),
            completed(hours=10, reported_at=None),
        ])

        report = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END)

        [item] = report.content_data
        assert item["total_downtime_hours"] == pytest.approx(2.0)
        assert item["work_order_count"] == 1

    def test_unknown_equipment_is_reported_without_name(self):
        aggregator, _, _ = make_aggregator([completed("eq-gone", hours=2)])

        [item] = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END).content_data

        assert item["equipment_id"] == "eq-gone"
        assert item["equipment_name"] is None


class TestMaintenanceCostsReport:
    """Test work-order and maintenance-history cost streams"""

    def test_direct_plus_parts_cost(self):
        order = completed(cost=Decimal("100"), parts_used=[PartUsage(part_id="P1", quantity=2)])
        aggregator, _, _ = make_aggregator([order], unit_costs={"P1": Decimal("50")})

        report = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END)

        [item] = report.content_data
        assert item["total_direct_costs"] == 100.0
        assert item["total_parts_cost"] == 100.0
        assert item["total_combined_cost"] == 200.0
        assert item["work_order_count"] == 1
        assert report.type == ReportType.FINANCIAL
        assert "Maintenance Costs" in report.title

    def test_includes_every_work_order_type_and_null_cost(self):
        aggregator, _, _ = make_aggregator([
            completed(cost=Decimal("40"), wo_type=WorkOrderType.PREVENTIVE),
            completed(cost=None),
        ])

        [item] = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END).content_data

        assert item["total_direct_costs"] == 40.0
        assert item["work_order_count"] == 2

    def test_missing_part_contributes_zero(self):
        order = completed(
            cost=Decimal("10"),
            parts_used=[PartUsage(part_id="P1", quantity=1), PartUsage(part_id="P404", quantity=3)],
        )
        aggregator, _, _ = make_aggregator([order], unit_costs={"P1": Decimal("25.50")})

        [item] = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END).content_data

        assert item["total_parts_cost"] == 25.5
        assert item["total_combined_cost"] == 35.5

    def test_unit_costs_are_looked_up_once_per_run(self):
        orders = [
            completed(parts_used=[PartUsage(part_id="P1", quantity=1)]),
            completed("eq-2", parts_used=[PartUsage(part_id="P1", quantity=4)]),
        ]
        aggregator, _, parts = make_aggregator(orders, unit_costs={"P1": Decimal("5")})

        metrics = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END).metrics_data

        assert parts.calls == 1
        assert metrics["total_parts_cost"] == 25.0

    def test_history_costs_are_a_separate_labelled_stream(self):
        history = [
            MaintenanceHistory(id="mh-1", equipment_id="eq-1", type="Preventive",
                               date="2024-01-15", cost=Decimal("500")),
            MaintenanceHistory(id="mh-2", equipment_id="eq-1", type="Preventive",
                               date="2023-06-15", cost=Decimal("300")),
            MaintenanceHistory(id="mh-3", equipment_id="eq-2", type="Corrective",
                               date="2024-01-xx", cost=Decimal("999")),
            MaintenanceHistory(id="mh-4", equipment_id="eq-2", type="Corrective",
                               date="2024-01-20", cost=None),
        ]
        aggregator, _, _ = make_aggregator([completed(cost=Decimal("100"))], history=history)

        metrics = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END).metrics_data

        assert metrics["total_work_order_costs"] == 100.0
        assert metrics["maintenance_history_costs"] == 500.0
        assert metrics["maintenance_history_record_count"] == 1
        assert metrics["combined_total"] == 600.0
        assert metrics["combined_total_is_approximate"] is True
        assert "overlap" in metrics["combined_total_note"]


class TestStaffEfficiencyReport:
    """Test per-technician completion statistics"""

    def test_technician_average_and_count(self):
        aggregator, _, _ = make_aggregator([
            completed(hours=2, assigned_to="tech-1"),
            completed(hours=4, assigned_to="tech-1", wo_type=WorkOrderType.PREVENTIVE),
        ])

        report = aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END)

        [item] = report.content_data
        assert item["technician_name"] == "technician"
        assert item["total_completed"] == 2
        assert item["avg_completion_time_hours"] == 3.0
        assert item["completed_by_type"] == {"Corrective": 1, "Preventive": 1}
        assert report.type == ReportType.STAFF_EFFICIENCY

    def test_overall_is_mean_of_technician_averages(self):
        aggregator, _, _ = make_aggregator([
            completed(hours=3, assigned_to="tech-1"),
            completed(hours=3, assigned_to="tech-1"),
            completed(hours=3, assigned_to="tech-1"),
            completed(hours=9, assigned_to="tech-2"),
        ])

        metrics = aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END).metrics_data

        # pooled mean would be 4.5
        assert metrics["overall_avg_completion_time_hours"] == 6.0
        assert metrics["averaging_policy"] == "mean_of_technician_averages"
        assert metrics["technician_count"] == 2
        assert metrics["total_completed"] == 4

    def test_average_is_rounded_to_two_places(self):
        aggregator, _, _ = make_aggregator([
            completed(hours=1, assigned_to="tech-1"),
            completed(hours=1, assigned_to="tech-1"),
            completed(hours=2, assigned_to="tech-1"),
        ])

        [item] = aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END).content_data

        assert item["avg_completion_time_hours"] == 1.33

    def test_unassigned_and_unknown_assignees_are_skipped(self):
        aggregator, _, _ = make_aggregator([
            completed(hours=2, assigned_to="tech-1"),
            completed(hours=5, assigned_to=None),
            completed(hours=7, assigned_to="ghost"),
        ])

        report = aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END)

        assert [item["technician_id"] for item in report.content_data] == ["tech-1"]
        assert report.metrics_data["overall_avg_completion_time_hours"] == 2.0

    def test_empty_period_still_produces_report(self):
        aggregator, reports, _ = make_aggregator()

        report = aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END)

        assert report.content_data == []
        assert report.metrics_data["total_completed"] == 0
        assert report.metrics_data["overall_avg_completion_time_hours"] == 0.0
        assert len(reports.rows) == 1


class TestReportRuns:
    """Test validation, re-runs and report bookkeeping"""

    def test_reversed_period_is_rejected_before_any_read(self):
        work_orders = MagicMock()
        aggregator = ReportingAggregator(
            work_orders=work_orders,
            history=FakeHistoryStore(),
            reports=FakeReportStore(),
            equipment=FakeEquipmentDirectory(),
            parts=FakeSparePartCatalog(),
            users=FakeUserDirectory(),
            clock=FixedClock(utc(2024, 2, 1)),
        )

        with pytest.raises(ValidationError):
            aggregator.generate_downtime_report(PERIOD_END, PERIOD_START)
        work_orders.find_completed_between.assert_not_called()

    def test_malformed_and_missing_bounds(self):
        aggregator, reports, _ = make_aggregator()

        with pytest.raises(ValidationError):
            aggregator.generate_staff_efficiency_report("last month", PERIOD_END)
        with pytest.raises(ValidationError):
            aggregator.generate_staff_efficiency_report(None, PERIOD_END)
        assert not reports.rows

    def test_iso_string_bounds_are_accepted(self):
        aggregator, _, _ = make_aggregator([completed(hours=2)])

        report = aggregator.generate_downtime_report("2024-01-01T00:00:00+00:00", "2024-01-31T23:59:59+00:00")

        assert report.metrics_data["total_work_orders"] == 1
        assert report.period.startswith("2024-01-01T00:00:00+00:00")

    def test_rerun_yields_identical_content_and_metrics(self):
        aggregator, reports, _ = make_aggregator([
            completed("eq-2", hours=3, cost=Decimal("12.50")),
            completed("eq-1", hours=2, cost=Decimal("7")),
        ])

        first = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END)
        aggregator.clock.advance(days=1)
        second = aggregator.generate_maintenance_costs_report(PERIOD_START, PERIOD_END)

        assert first.id != second.id
        assert first.content == second.content
        assert first.metrics == second.metrics
        assert second.generated_at > first.generated_at
        assert [item["equipment_id"] for item in first.content_data] == ["eq-1", "eq-2"]
        assert len(reports.rows) == 2

    def test_default_generator(self):
        aggregator, _, _ = make_aggregator()

        report = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END)

        assert report.generated_by == "system"

    def test_store_failure_writes_no_report(self):
        aggregator, reports, _ = make_aggregator([completed(hours=2)])
        aggregator.users = MagicMock()
        aggregator.users.get_many.side_effect = StoreError("timeout")

        with pytest.raises(StoreError):
            aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END)
        assert not reports.rows

    def test_list_and_delete_reports(self):
        aggregator, _, _ = make_aggregator()
        downtime = aggregator.generate_downtime_report(PERIOD_START, PERIOD_END)
        aggregator.generate_staff_efficiency_report(PERIOD_START, PERIOD_END)

        assert [r.id for r in aggregator.list_reports(ReportType.PERFORMANCE)] == [downtime.id]
        assert len(aggregator.list_reports()) == 2
        assert aggregator.delete_report(downtime.id) is True
        assert aggregator.delete_report(downtime.id) is False


class TestTimezoneHandling:
    """Test that naive and aware timestamps mix without errors"""

    def test_date_only_bounds_over_aware_rows(self):
        aggregator, _, _ = make_aggregator([completed(hours=2)])

        report = aggregator.generate_downtime_report("2024-01-01", "2024-01-31")

        assert report.metrics_data["total_work_orders"] == 1
        assert report.period == "2024-01-01T00:00:00+00:00 to 2024-01-31T00:00:00+00:00"

    def test_naive_bounds_are_read_as_utc(self):
        aggregator, _, _ = make_aggregator([completed(hours=2)])

        report = aggregator.generate_staff_efficiency_report(
            datetime(2024, 1, 1), PERIOD_END
        )

        assert report.period.startswith("2024-01-01T00:00:00+00:00")

    def test_naive_rows_are_stored_as_utc(self):
        naive = WorkOrder(
            id="wo-naive",
            equipment_id="eq-1",
            issue="Rotor replacement required",
            type=WorkOrderType.CORRECTIVE,
            status=WorkOrderStatus.COMPLETED,
            reported_at=datetime(2024, 1, 10, 8),
            completed_at=datetime(2024, 1, 10, 12),
        )
        assert naive.completed_at.tzinfo == timezone.utc

        aggregator, _, _ = make_aggregator([naive])
        [item] = aggregator.generate_downtime_report("2024-01-01T00:00:00+02:00", PERIOD_END).content_data

        assert item["total_downtime_hours"] == pytest.approx(4.0)

    def test_offset_bounds_are_converted_to_utc(self):
        aggregator, _, _ = make_aggregator([completed(hours=2, completed_at=utc(2024, 1, 31, 23))])

        # 2024-02-01T01:00+02:00 is 23:00 UTC on Jan 31
        report = aggregator.generate_downtime_report(PERIOD_START, "2024-02-01T01:00:00+02:00")

        assert report.metrics_data["total_work_orders"] == 1


class TestComplianceReport:
    """Test the compliance snapshot"""

    NOW = utc(2024, 3, 1)

    def _record(self, record_id, next_due, status="Compliant", standard="ISO 13485", equipment_id="eq-1"):
        return ComplianceRecord(
            id=record_id,
            equipment_id=equipment_id,
            standard=standard,
            status=status,
            last_check=utc(2023, 3, 1),
            next_due=next_due,
        )

    def test_counts_and_upcoming_window(self):
        records = [
            self._record("c-soon", utc(2024, 3, 11), status="Pending"),
            self._record("c-edge", utc(2024, 3, 31)),
            self._record("c-later", utc(2024, 4, 15), standard="IEC 60601"),
            self._record("c-past", utc(2024, 2, 1), status="Expired", equipment_id="eq-2"),
        ]
        aggregator, reports, _ = make_aggregator(now=self.NOW, compliance=records)

        report = aggregator.generate_compliance_report()

        assert report.type == ReportType.COMPLIANCE
        assert "Compliance" in report.title
        assert [item["record_id"] for item in report.content_data] == ["c-soon", "c-edge"]
        assert report.content_data[0]["days_until_due"] == 10
        assert report.content_data[0]["status"] == "pending"
        assert report.content_data[0]["equipment_name"] == "Olympus CX23 (S/N: MIC-001)"
        metrics = report.metrics_data
        assert metrics["total_records"] == 4
        assert metrics["by_status"] == {"compliant": 2, "expired": 1, "pending": 1}
        assert metrics["by_standard"] == {"IEC 60601": 1, "ISO 13485": 3}
        assert metrics["upcoming_due_count"] == 2
        assert metrics["overdue_count"] == 1
        assert metrics["due_window_days"] == 30
        assert len(reports.rows) == 1

    def test_partial_days_round_up(self):
        aggregator, _, _ = make_aggregator(
            now=self.NOW, compliance=[self._record("c-1", utc(2024, 3, 2, 12))]
        )

        [item] = aggregator.generate_compliance_report().content_data

        assert item["days_until_due"] == 2

    def test_window_is_caller_supplied(self):
        records = [self._record("c-1", utc(2024, 3, 11))]
        aggregator, _, _ = make_aggregator(now=self.NOW, compliance=records)

        assert aggregator.generate_compliance_report(due_within_days=5).content_data == []
        assert len(aggregator.generate_compliance_report(due_within_days=10).content_data) == 1

    def test_negative_window_is_rejected(self):
        aggregator, reports, _ = make_aggregator(now=self.NOW)

        with pytest.raises(ValidationError):
            aggregator.generate_compliance_report(due_within_days=-1)
        assert not reports.rows
