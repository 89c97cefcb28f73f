"""
Preventive Maintenance Scheduler

Turns due preventive maintenance schedules into work orders and advances
each schedule by exactly one frequency step per firing. Every schedule is
processed on its own: a broken schedule is recorded in the result and the
pass moves on.

Overdue schedules fire once per pass. A daily schedule left alone for ten
days fires again on each following pass until its next_due_date is ahead
of the clock; missed occurrences are not back-filled.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError as PydanticValidationError

from cmms.models.domain import (
    Equipment,
    Frequency,
    PMSchedule,
    WorkOrderStatus,
    WorkOrderType,
)
from cmms.models.requests import ScheduleCreate, ScheduleUpdate
from cmms.models.results import GenerationResult, ItemError
from cmms.services.stores import EquipmentDirectory, ScheduleStore, WorkOrderStore
from cmms.utils.clock import Clock, as_utc, get_clock
from cmms.utils.config import settings
from cmms.utils.errors import (
    MissingReferenceError,
    ValidationError,
    describe_validation_error,
)

logger = logging.getLogger(__name__)


FREQUENCY_STEPS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.ANNUALLY: relativedelta(years=1),
}

REQUIRED_SCHEDULE_FIELDS = ("equipment_id", "task_description", "frequency", "next_due_date", "is_active")


def parse_frequency(value: str) -> Optional[Frequency]:
    """Case-insensitive frequency lookup; None when unrecognized"""
    try:
        return Frequency(value.strip().lower())
    except (ValueError, AttributeError):
        return None


def advance_due_date(current: datetime, frequency: Frequency) -> datetime:
    """
    Add one calendar step to a due date.

    Month arithmetic clamps to the end of shorter months, so a schedule due
    on Jan 31 advances to Feb 28/29.
    """
    return current + FREQUENCY_STEPS[frequency]


class PMScheduler:
    """Generates work orders from due preventive maintenance schedules"""

    def __init__(
        self,
        schedules: Optional[ScheduleStore] = None,
        work_orders: Optional[WorkOrderStore] = None,
        equipment: Optional[EquipmentDirectory] = None,
        clock: Optional[Clock] = None,
    ):
        self.schedules = schedules or ScheduleStore()
        self.work_orders = work_orders or WorkOrderStore()
        self.equipment = equipment or EquipmentDirectory()
        self.clock = clock or get_clock()

    def generate_due_work_orders(self, now: Optional[datetime] = None) -> GenerationResult:
        """
        Fire every active schedule with next_due_date <= now.

        Each due schedule yields one work order and one advance. Store
        failures while selecting schedules propagate. Any failure on a
        single schedule is isolated and reported in the result.

        Args:
            now: Evaluation instant (defaults to the clock)

        Returns:
            GenerationResult with generated/error counts and per-schedule errors
        """
        now = as_utc(now or self.clock.now())
        result = GenerationResult()

        due_schedules = self.schedules.find_due(now)
        if not due_schedules:
            logger.info("No preventive maintenance work orders due at this time")
            return result

        logger.info(f"Found {len(due_schedules)} due preventive maintenance schedules")

        for schedule in due_schedules:
            try:
                work_order_id = self._fire(schedule, now, result)
            except Exception as e:
                logger.exception(f"Failed to generate work order for schedule {schedule.id}: {e}")
                result.errors.append(ItemError(item_id=schedule.id, error=str(e)))
                result.error_count += 1
                continue
            result.work_order_ids.append(work_order_id)
            result.generated_count += 1

        logger.info(
            f"Work order generation completed: {result.generated_count} generated, "
            f"{result.error_count} failed"
        )
        return result

    def _fire(self, schedule: PMSchedule, now: datetime, result: GenerationResult) -> str:
        """Create the work order for one schedule and advance it"""
        equipment = self.equipment.get(schedule.equipment_id)
        if equipment is None:
            raise MissingReferenceError("Equipment", schedule.equipment_id)

        frequency = parse_frequency(schedule.frequency)
        if frequency is None:
            message = (
                f"Schedule {schedule.id} has unknown frequency "
                f"'{schedule.frequency}'; defaulting to monthly"
            )
            logger.warning(message)
            result.warnings.append(message)
            frequency = Frequency.MONTHLY

        work_order = self.work_orders.create({
            "equipment_id": schedule.equipment_id,
            "issue": schedule.task_description,
            "type": WorkOrderType.PREVENTIVE,
            "priority": settings.PM_DEFAULT_PRIORITY,
            "status": (
                WorkOrderStatus.ASSIGNED if schedule.assigned_to_user_id
                else WorkOrderStatus.REPORTED
            ),
            "reported_by": settings.PM_SYSTEM_REPORTER,
            "reported_at": now,
            "assigned_to": schedule.assigned_to_user_id,
            "description": self._describe(schedule, equipment),
        })

        next_due = advance_due_date(schedule.next_due_date, frequency)
        updated = self.schedules.update(schedule.id, {
            "last_generated_date": now,
            "next_due_date": next_due,
        })
        if updated is None:
            raise MissingReferenceError("PM schedule", schedule.id)

        logger.debug(
            f"Schedule {schedule.id} fired work order {work_order.id}; "
            f"next due {next_due.isoformat()}"
        )
        return work_order.id

    @staticmethod
    def _describe(schedule: PMSchedule, equipment: Equipment) -> str:
        return (
            f"Preventive maintenance based on schedule: {schedule.task_description} "
            f"for {equipment.display_name}. Frequency: {schedule.frequency}."
        )

    # ------------------------------------------------------------------
    # Schedule maintenance
    # ------------------------------------------------------------------

    def create_schedule(self, data: Dict[str, Any]) -> PMSchedule:
        """Validate and store a new schedule"""
        try:
            payload = ScheduleCreate(**data)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        if self.equipment.get(payload.equipment_id) is None:
            raise MissingReferenceError("Equipment", payload.equipment_id)

        values = payload.model_dump()
        values["frequency"] = payload.frequency.value
        schedule = self.schedules.create(values)
        logger.info(f"Created PM schedule {schedule.id} for equipment {schedule.equipment_id}")
        return schedule

    def update_schedule(self, schedule_id: str, changes: Dict[str, Any]) -> PMSchedule:
        """Apply an explicit operator edit to a schedule"""
        try:
            payload = ScheduleUpdate(**changes)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        values = payload.model_dump(exclude_unset=True)
        if not values:
            raise ValidationError("No fields provided for update")
        for field in REQUIRED_SCHEDULE_FIELDS:
            if field in values and values[field] is None:
                raise ValidationError(f"{field} cannot be cleared")
        if "frequency" in values:
            values["frequency"] = values["frequency"].value
        if "assigned_to_user_id" in values:
            values["assigned_to_user_id"] = values["assigned_to_user_id"] or None
        if values.get("equipment_id") and self.equipment.get(values["equipment_id"]) is None:
            raise MissingReferenceError("Equipment", values["equipment_id"])

        schedule = self.schedules.update(schedule_id, values)
        if schedule is None:
            raise MissingReferenceError("PM schedule", schedule_id)
        return schedule

    def upcoming(self, now: Optional[datetime] = None, days: int = 7) -> List[PMSchedule]:
        """Active schedules falling due within the next `days` days"""
        if days < 0:
            raise ValidationError("days must not be negative")
        now = as_utc(now or self.clock.now())
        return self.schedules.find_due_between(now, now + timedelta(days=days))


# Singleton instance
_pm_scheduler = None

def get_pm_scheduler() -> PMScheduler:
    """Get singleton instance of PMScheduler"""
    global _pm_scheduler
    if _pm_scheduler is None:
        _pm_scheduler = PMScheduler()
    return _pm_scheduler
