"""
Work Order Lifecycle

After creation a work order only changes through status transitions.
Cost and parts are attached on the move to Completed, which also stamps
completed_at and takes the used parts out of stock.
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union, Dict, Any

from pydantic import ValidationError as PydanticValidationError

from cmms.models.domain import PartUsage, WorkOrder, WorkOrderStatus
from cmms.services.stores import SparePartCatalog, WorkOrderStore
from cmms.utils.clock import Clock, as_utc, get_clock
from cmms.utils.errors import (
    InvalidTransitionError,
    MissingReferenceError,
    ValidationError,
    describe_validation_error,
)

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    WorkOrderStatus.REPORTED: {
        WorkOrderStatus.ASSIGNED,
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.ASSIGNED: {
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.ON_HOLD,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.IN_PROGRESS: {
        WorkOrderStatus.ON_HOLD,
        WorkOrderStatus.COMPLETED,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.ON_HOLD: {
        WorkOrderStatus.IN_PROGRESS,
        WorkOrderStatus.CANCELLED,
    },
    WorkOrderStatus.COMPLETED: set(),
    WorkOrderStatus.CANCELLED: set(),
}


def can_transition(current: WorkOrderStatus, requested: WorkOrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class WorkOrderLifecycle:
    """Guards work order status changes"""

    def __init__(
        self,
        work_orders: Optional[WorkOrderStore] = None,
        parts: Optional[SparePartCatalog] = None,
        clock: Optional[Clock] = None,
    ):
        self.work_orders = work_orders or WorkOrderStore()
        self.parts = parts or SparePartCatalog()
        self.clock = clock or get_clock()

    def transition(
        self,
        work_order_id: str,
        new_status: Union[WorkOrderStatus, str],
        now: Optional[datetime] = None,
        cost: Optional[Decimal] = None,
        parts_used: Optional[List[Union[PartUsage, Dict[str, Any]]]] = None,
        assigned_to: Optional[str] = None,
    ) -> WorkOrder:
        """
        Move a work order to new_status.

        Raises:
            ValidationError: unknown status, cost/parts outside completion,
                or not enough stock for a part
            InvalidTransitionError: the move is not allowed from the current status
            MissingReferenceError: the work order or a used part does not exist
        """
        try:
            requested = WorkOrderStatus(new_status)
        except ValueError as e:
            raise ValidationError(f"Unknown work order status '{new_status}'") from e

        completing = requested == WorkOrderStatus.COMPLETED
        if not completing and (cost is not None or parts_used is not None):
            raise ValidationError("cost and parts_used can only be attached on completion")
        if cost is not None and Decimal(str(cost)) < 0:
            raise ValidationError("cost must not be negative")

        work_order = self.work_orders.get(work_order_id)
        if work_order is None:
            raise MissingReferenceError("Work order", work_order_id)
        if not can_transition(work_order.status, requested):
            raise InvalidTransitionError(work_order.status.value, requested.value)

        changes: Dict[str, Any] = {"status": requested}
        if requested == WorkOrderStatus.ASSIGNED:
            assignee = assigned_to or work_order.assigned_to
            if not assignee:
                raise ValidationError("An assignee is required to assign a work order")
            changes["assigned_to"] = assignee
        elif assigned_to:
            changes["assigned_to"] = assigned_to

        if completing:
            changes["completed_at"] = as_utc(now or self.clock.now())
            if cost is not None:
                changes["cost"] = Decimal(str(cost))
            if parts_used is not None:
                try:
                    changes["parts_used"] = [
                        p if isinstance(p, PartUsage) else PartUsage(**p) for p in parts_used
                    ]
                except PydanticValidationError as e:
                    raise ValidationError(describe_validation_error(e)) from e
                self._consume_parts(changes["parts_used"])

        updated = self.work_orders.update(work_order_id, changes)
        if updated is None:
            raise MissingReferenceError("Work order", work_order_id)
        logger.info(f"Work order {work_order_id}: {work_order.status.value} -> {requested.value}")
        return updated

    def _consume_parts(self, usages: List[PartUsage]) -> None:
        """Check every used part exists with enough stock, then take it"""
        needed: Dict[str, int] = defaultdict(int)
        for usage in usages:
            needed[usage.part_id] += usage.quantity
        if not needed:
            return

        stock = self.parts.get_many(needed)
        for part_id in sorted(needed):
            part = stock.get(part_id)
            if part is None:
                raise MissingReferenceError("Spare part", part_id)
            if part.quantity < needed[part_id]:
                raise ValidationError(
                    f"Not enough stock for spare part {part_id}: "
                    f"{part.quantity} available, {needed[part_id]} requested"
                )

        self.parts.consume(dict(needed))
