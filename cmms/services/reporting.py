"""
Reporting Aggregator

Computes downtime, maintenance-cost and staff-efficiency summaries from
completed work orders over a period, plus a snapshot of compliance checks
falling due, and records each run as an immutable Report. Inputs are only
read; the single write per run is the report row, so a failure anywhere
leaves no partial report behind.

Content lists are sorted by equipment or technician id so that re-running
over the same period yields identical content and metrics.
"""

import json
import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Dict, Any, Optional, Iterable, Tuple, Union

from dateutil import parser as date_parser

from cmms.models.domain import (
    ComplianceRecord,
    Report,
    ReportType,
    WorkOrder,
    WorkOrderStatus,
    WorkOrderType,
)
from cmms.models.results import (
    ComplianceDue,
    EquipmentCost,
    EquipmentDowntime,
    TechnicianEfficiency,
)
from cmms.services.stores import (
    ComplianceStore,
    EquipmentDirectory,
    HistoryStore,
    ReportStore,
    SparePartCatalog,
    UserDirectory,
    WorkOrderStore,
)
from cmms.utils.clock import Clock, as_utc, get_clock
from cmms.utils.config import settings
from cmms.utils.errors import ValidationError

logger = logging.getLogger(__name__)


PeriodBound = Union[datetime, str]

STAFF_AVERAGING_POLICY = "mean_of_technician_averages"
COMBINED_COST_NOTE = (
    "Work-order costs and maintenance-history costs are recorded independently "
    "and may overlap; combined_total is their plain sum, not a reconciled figure."
)


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01")))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class ReportingAggregator:
    """Builds Performance, Financial, StaffEfficiency and Compliance reports"""

    def __init__(
        self,
        work_orders: Optional[WorkOrderStore] = None,
        history: Optional[HistoryStore] = None,
        reports: Optional[ReportStore] = None,
        equipment: Optional[EquipmentDirectory] = None,
        parts: Optional[SparePartCatalog] = None,
        users: Optional[UserDirectory] = None,
        compliance: Optional[ComplianceStore] = None,
        clock: Optional[Clock] = None,
    ):
        self.work_orders = work_orders or WorkOrderStore()
        self.history = history or HistoryStore()
        self.reports = reports or ReportStore()
        self.equipment = equipment or EquipmentDirectory()
        self.parts = parts or SparePartCatalog()
        self.users = users or UserDirectory()
        self.compliance = compliance or ComplianceStore()
        self.clock = clock or get_clock()

    # ------------------------------------------------------------------
    # Downtime
    # ------------------------------------------------------------------

    def generate_downtime_report(
        self,
        period_start: PeriodBound,
        period_end: PeriodBound,
        generated_by: Optional[str] = None,
    ) -> Report:
        """
        Downtime of completed corrective work orders, per equipment.

        Downtime is the exact elapsed time from reported_at to completed_at,
        in fractional hours.
        """
        start, end = self._validate_period(period_start, period_end)

        orders = self.work_orders.find_completed_between(start, end, WorkOrderType.CORRECTIVE.value)
        downtimes: Dict[str, List[float]] = defaultdict(list)
        for wo in self._in_period(orders, start, end):
            if wo.type != WorkOrderType.CORRECTIVE or wo.reported_at is None:
                continue
            hours = self._elapsed_hours(wo)
            if hours is not None:
                downtimes[wo.equipment_id].append(hours)

        names = self._equipment_names(downtimes)
        items = []
        for equipment_id in sorted(downtimes):
            hours = downtimes[equipment_id]
            items.append(EquipmentDowntime(
                equipment_id=equipment_id,
                equipment_name=names.get(equipment_id),
                total_downtime_hours=sum(hours),
                work_order_count=len(hours),
                average_downtime_hours=_mean(hours),
            ))

        total_hours = sum(item.total_downtime_hours for item in items)
        total_orders = sum(item.work_order_count for item in items)
        metrics = {
            "total_downtime_hours": total_hours,
            "total_work_orders": total_orders,
            "equipment_count": len(items),
            "average_downtime_hours": total_hours / total_orders if total_orders else 0.0,
        }

        return self._create_report(
            ReportType.PERFORMANCE,
            "Equipment Downtime Report",
            [item.model_dump() for item in items],
            metrics,
            start,
            end,
            generated_by,
        )

    # ------------------------------------------------------------------
    # Maintenance costs
    # ------------------------------------------------------------------

    def generate_maintenance_costs_report(
        self,
        period_start: PeriodBound,
        period_end: PeriodBound,
        generated_by: Optional[str] = None,
    ) -> Report:
        """
        Direct and parts costs of completed work orders, per equipment,
        plus the independent maintenance-history cost stream.
        """
        start, end = self._validate_period(period_start, period_end)

        orders = list(self._in_period(self.work_orders.find_completed_between(start, end), start, end))
        unit_costs = self._unit_costs(orders)

        direct: Dict[str, Decimal] = defaultdict(Decimal)
        parts: Dict[str, Decimal] = defaultdict(Decimal)
        counts: Counter = Counter()
        for wo in orders:
            direct[wo.equipment_id] += wo.cost or Decimal("0")
            parts[wo.equipment_id] += self._parts_cost(wo, unit_costs)
            counts[wo.equipment_id] += 1

        names = self._equipment_names(counts)
        items = [
            EquipmentCost(
                equipment_id=equipment_id,
                equipment_name=names.get(equipment_id),
                total_direct_costs=_money(direct[equipment_id]),
                total_parts_cost=_money(parts[equipment_id]),
                total_combined_cost=_money(direct[equipment_id] + parts[equipment_id]),
                work_order_count=counts[equipment_id],
            )
            for equipment_id in sorted(counts)
        ]

        history_total, history_count = self._history_costs(start, end)
        total_direct = sum(direct.values(), Decimal("0"))
        total_parts = sum(parts.values(), Decimal("0"))
        work_order_total = total_direct + total_parts

        metrics = {
            "total_direct_costs": _money(total_direct),
            "total_parts_cost": _money(total_parts),
            "total_work_order_costs": _money(work_order_total),
            "work_order_count": len(orders),
            "maintenance_history_costs": _money(history_total),
            "maintenance_history_record_count": history_count,
            "combined_total": _money(work_order_total + history_total),
            "combined_total_is_approximate": True,
            "combined_total_note": COMBINED_COST_NOTE,
        }

        return self._create_report(
            ReportType.FINANCIAL,
            "Maintenance Costs Report",
            [item.model_dump() for item in items],
            metrics,
            start,
            end,
            generated_by,
        )

    def _unit_costs(self, orders: Iterable[WorkOrder]) -> Dict[str, Decimal]:
        """Look up every referenced part once for the whole run"""
        part_ids = {usage.part_id for wo in orders for usage in (wo.parts_used or [])}
        unit_costs = self.parts.unit_costs(part_ids)
        for part_id in sorted(part_ids - set(unit_costs)):
            logger.warning(f"Spare part {part_id} not found; its usage is costed at 0")
        return unit_costs

    @staticmethod
    def _parts_cost(wo: WorkOrder, unit_costs: Dict[str, Decimal]) -> Decimal:
        total = Decimal("0")
        for usage in wo.parts_used or []:
            total += unit_costs.get(usage.part_id, Decimal("0")) * usage.quantity
        return total

    def _history_costs(self, start: datetime, end: datetime) -> Tuple[Decimal, int]:
        total = Decimal("0")
        count = 0
        for record in self.history.find_with_cost(start, end):
            recorded_on = _parse_record_date(record.date)
            if recorded_on is None:
                logger.warning(
                    f"Maintenance record {record.id} has unreadable date '{record.date}'; skipped"
                )
                continue
            if start <= recorded_on <= end:
                total += record.cost or Decimal("0")
                count += 1
        return total, count

    # ------------------------------------------------------------------
    # Staff efficiency
    # ------------------------------------------------------------------

    def generate_staff_efficiency_report(
        self,
        period_start: PeriodBound,
        period_end: PeriodBound,
        generated_by: Optional[str] = None,
    ) -> Report:
        """
        Completed work per technician and average completion time.

        The overall figure is the mean of the per-technician averages, so
        each technician weighs the same regardless of how many work orders
        they closed. A pooled per-work-order mean is not reported.
        """
        start, end = self._validate_period(period_start, period_end)

        durations: Dict[str, List[float]] = defaultdict(list)
        by_type: Dict[str, Counter] = defaultdict(Counter)
        for wo in self._in_period(self.work_orders.find_completed_between(start, end), start, end):
            if not wo.assigned_to or wo.reported_at is None:
                continue
            hours = self._elapsed_hours(wo)
            if hours is None:
                continue
            durations[wo.assigned_to].append(hours)
            by_type[wo.assigned_to][wo.type.value] += 1

        technicians = self.users.get_many(durations)
        items = []
        for technician_id in sorted(durations):
            user = technicians.get(technician_id)
            if user is None:
                logger.warning(f"Assignee {technician_id} not found; excluded from staff efficiency")
                continue
            items.append(TechnicianEfficiency(
                technician_id=technician_id,
                technician_name=user.username,
                total_completed=len(durations[technician_id]),
                completed_by_type=dict(sorted(by_type[technician_id].items())),
                avg_completion_time_hours=round(_mean(durations[technician_id]), 2),
            ))

        technician_averages = [_mean(durations[item.technician_id]) for item in items]
        metrics = {
            "technician_count": len(items),
            "total_completed": sum(item.total_completed for item in items),
            "overall_avg_completion_time_hours": round(_mean(technician_averages), 2),
            "averaging_policy": STAFF_AVERAGING_POLICY,
        }

        return self._create_report(
            ReportType.STAFF_EFFICIENCY,
            "Staff Efficiency Report",
            [item.model_dump() for item in items],
            metrics,
            start,
            end,
            generated_by,
        )

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    def generate_compliance_report(
        self,
        now: Optional[datetime] = None,
        due_within_days: Optional[int] = None,
        generated_by: Optional[str] = None,
    ) -> Report:
        """
        Snapshot of compliance checks as of now.

        Counts records by status and by standard, lists the checks falling
        due in (now, now + due_within_days] and counts those already past
        their due date. The report period is that look-ahead window.
        """
        if due_within_days is None:
            due_within_days = settings.COMPLIANCE_DUE_WINDOW_DAYS
        if due_within_days < 0:
            raise ValidationError("due_within_days must not be negative")
        now = as_utc(now or self.clock.now())
        horizon = now + timedelta(days=due_within_days)

        records = self.compliance.find_all()
        upcoming = sorted(
            (r for r in records if now < r.next_due <= horizon),
            key=lambda r: (r.next_due, r.id),
        )
        overdue_count = sum(1 for r in records if r.next_due <= now)

        names = self._equipment_names(r.equipment_id for r in upcoming)
        items = [self._compliance_due(r, now, names) for r in upcoming]

        metrics = {
            "total_records": len(records),
            "by_status": dict(sorted(Counter(r.status.strip().lower() for r in records).items())),
            "by_standard": dict(sorted(Counter(r.standard for r in records).items())),
            "upcoming_due_count": len(items),
            "overdue_count": overdue_count,
            "due_window_days": due_within_days,
        }

        return self._create_report(
            ReportType.COMPLIANCE,
            "Compliance Report",
            [item.model_dump() for item in items],
            metrics,
            now,
            horizon,
            generated_by,
        )

    @staticmethod
    def _compliance_due(record: ComplianceRecord, now: datetime, names: Dict[str, str]) -> ComplianceDue:
        # Partial days round up, so a check due in 36 hours is 2 days away
        days = math.ceil((record.next_due - now).total_seconds() / 86400)
        return ComplianceDue(
            record_id=record.id,
            equipment_id=record.equipment_id,
            equipment_name=names.get(record.equipment_id),
            standard=record.standard,
            status=record.status.strip().lower(),
            next_due=record.next_due.isoformat(),
            days_until_due=days,
        )

    # ------------------------------------------------------------------
    # Report records
    # ------------------------------------------------------------------

    def list_reports(self, report_type: Optional[ReportType] = None) -> List[Report]:
        return self.reports.list(report_type)

    def delete_report(self, report_id: str) -> bool:
        deleted = self.reports.delete(report_id)
        if deleted:
            logger.info(f"Deleted report {report_id}")
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_period(period_start: PeriodBound, period_end: PeriodBound) -> Tuple[datetime, datetime]:
        bounds = []
        for name, value in (("period_start", period_start), ("period_end", period_end)):
            if value is None or value == "":
                raise ValidationError(f"{name} is required")
            if isinstance(value, str):
                try:
                    value = date_parser.isoparse(value)
                except ValueError as e:
                    raise ValidationError(f"{name} is not an ISO 8601 timestamp: '{value}'") from e
            if not isinstance(value, datetime):
                raise ValidationError(f"{name} must be a timestamp")
            bounds.append(as_utc(value))

        start, end = bounds
        if start > end:
            raise ValidationError("period_start must not be after period_end")
        return start, end

    @staticmethod
    def _in_period(orders: Iterable[WorkOrder], start: datetime, end: datetime) -> Iterable[WorkOrder]:
        for wo in orders:
            if wo.status != WorkOrderStatus.COMPLETED or wo.completed_at is None:
                continue
            if start <= wo.completed_at <= end:
                yield wo

    @staticmethod
    def _elapsed_hours(wo: WorkOrder) -> Optional[float]:
        hours = _hours(wo.reported_at, wo.completed_at)
        if hours < 0:
            logger.warning(f"Work order {wo.id} completed before it was reported; skipped")
            return None
        return hours

    def _equipment_names(self, equipment_ids: Iterable[str]) -> Dict[str, str]:
        ids = set(equipment_ids)
        found = self.equipment.get_many(ids)
        for equipment_id in sorted(ids - set(found)):
            logger.warning(f"Equipment {equipment_id} not found; reported without a name")
        return {equipment_id: item.display_name for equipment_id, item in found.items()}

    def _create_report(
        self,
        report_type: ReportType,
        title: str,
        content: List[Dict[str, Any]],
        metrics: Dict[str, Any],
        start: datetime,
        end: datetime,
        generated_by: Optional[str],
    ) -> Report:
        period = f"{start.isoformat()} to {end.isoformat()}"
        report = self.reports.create({
            "type": report_type,
            "title": f"{title} ({start.date().isoformat()} to {end.date().isoformat()})",
            "content": json.dumps(content, sort_keys=True),
            "period": period,
            "metrics": json.dumps(metrics, sort_keys=True),
            "generated_by": generated_by or settings.REPORT_DEFAULT_GENERATOR,
            "generated_at": as_utc(self.clock.now()),
        })
        logger.info(f"Generated {report_type.value} report {report.id} for {period}")
        return report


def _parse_record_date(value: str) -> Optional[datetime]:
    """Parse a free-text record date as UTC; None when unreadable"""
    try:
        return as_utc(date_parser.isoparse(value.strip()))
    except (ValueError, AttributeError):
        return None


# Singleton instance
_reporting_aggregator = None

def get_reporting_aggregator() -> ReportingAggregator:
    """Get singleton instance of ReportingAggregator"""
    global _reporting_aggregator
    if _reporting_aggregator is None:
        _reporting_aggregator = ReportingAggregator()
    return _reporting_aggregator
