"""
Contract Lifecycle Evaluator

Reclassifies service contracts as they approach or pass their end date:

    Active -> Pending Renewal -> Expired

Cancelled is set by hand and never touched here. Automatic transitions only
move forward; a Pending Renewal contract returns to Active only through an
explicit edit that extends its end date.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

from pydantic import ValidationError as PydanticValidationError

from cmms.models.domain import Contract, ContractStatus
from cmms.models.requests import ContractCreate, ContractUpdate
from cmms.models.results import ContractEvaluationResult, ItemError
from cmms.services.stores import ContractStore, EquipmentDirectory
from cmms.utils.clock import Clock, as_utc, get_clock
from cmms.utils.config import settings
from cmms.utils.errors import (
    MissingReferenceError,
    ValidationError,
    describe_validation_error,
)

logger = logging.getLogger(__name__)


# Statuses the evaluator is allowed to move
EVALUATED_STATUSES = (ContractStatus.ACTIVE, ContractStatus.PENDING_RENEWAL)

# Forward order used to refuse regressions
_STATUS_RANK = {
    ContractStatus.ACTIVE: 0,
    ContractStatus.PENDING_RENEWAL: 1,
    ContractStatus.EXPIRED: 2,
}


def default_reminder_date(end_date: datetime) -> datetime:
    """end_date minus the configured renewal reminder offset"""
    return end_date - timedelta(days=settings.CONTRACT_RENEWAL_REMINDER_OFFSET_DAYS)


def derive_contract_status(
    end_date: datetime,
    renewal_reminder_date: Optional[datetime],
    now: datetime,
    reminder_threshold_days: int,
) -> ContractStatus:
    """
    Two-step rule shared by the evaluator and by contract creation/edit:
    expired first, then the reminder window.
    """
    end_date = as_utc(end_date)
    now = as_utc(now)
    if renewal_reminder_date is not None:
        renewal_reminder_date = as_utc(renewal_reminder_date)
    if end_date < now:
        return ContractStatus.EXPIRED
    if end_date <= now + timedelta(days=reminder_threshold_days):
        return ContractStatus.PENDING_RENEWAL
    if renewal_reminder_date is not None and renewal_reminder_date <= now:
        return ContractStatus.PENDING_RENEWAL
    return ContractStatus.ACTIVE


class ContractLifecycleEvaluator:
    """Derives contract status from the clock and contract dates"""

    def __init__(
        self,
        contracts: Optional[ContractStore] = None,
        equipment: Optional[EquipmentDirectory] = None,
        clock: Optional[Clock] = None,
    ):
        self.contracts = contracts or ContractStore()
        self.equipment = equipment or EquipmentDirectory()
        self.clock = clock or get_clock()

    def evaluate(
        self,
        now: Optional[datetime] = None,
        reminder_threshold_days: Optional[int] = None,
    ) -> ContractEvaluationResult:
        """
        Move Active/Pending Renewal contracts forward based on now.

        Args:
            now: Evaluation instant (defaults to the clock)
            reminder_threshold_days: Reminder window in days (defaults to settings)

        Returns:
            ContractEvaluationResult with counts of newly expired and newly
            pending-renewal contracts
        """
        if reminder_threshold_days is None:
            reminder_threshold_days = settings.CONTRACT_REMINDER_DAYS
        if reminder_threshold_days < 0:
            raise ValidationError("reminder_threshold_days must not be negative")
        now = as_utc(now or self.clock.now())
        result = ContractEvaluationResult()

        for contract in self.contracts.find_by_statuses(EVALUATED_STATUSES):
            try:
                target = derive_contract_status(
                    contract.end_date,
                    contract.renewal_reminder_date,
                    now,
                    reminder_threshold_days,
                )
                if _STATUS_RANK[target] <= _STATUS_RANK[contract.status]:
                    continue
                updated = self.contracts.update(contract.id, {"status": target})
                if updated is None:
                    raise MissingReferenceError("Contract", contract.id)
            except Exception as e:
                logger.exception(f"Failed to update status of contract {contract.id}: {e}")
                result.errors.append(ItemError(item_id=contract.id, error=str(e)))
                result.error_count += 1
                continue

            logger.info(f"Contract {contract.id} ({contract.vendor}): {contract.status.value} -> {target.value}")
            result.updated_count += 1
            if target == ContractStatus.EXPIRED:
                result.newly_expired_count += 1
            else:
                result.newly_pending_renewal_count += 1

        logger.info(
            f"Contract evaluation completed: {result.newly_expired_count} expired, "
            f"{result.newly_pending_renewal_count} pending renewal, {result.error_count} failed"
        )
        return result

    # ------------------------------------------------------------------
    # Creation and explicit edits
    # ------------------------------------------------------------------

    def create_contract(self, data: Dict[str, Any], now: Optional[datetime] = None) -> Contract:
        """
        Validate and store a contract, deriving its status unless supplied.
        """
        try:
            payload = ContractCreate(**data)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        if self.equipment.get(payload.equipment_id) is None:
            raise MissingReferenceError("Equipment", payload.equipment_id)

        values = payload.model_dump()
        if values["renewal_reminder_date"] is None:
            values["renewal_reminder_date"] = default_reminder_date(payload.end_date)
        if values["status"] is None:
            values["status"] = derive_contract_status(
                payload.end_date,
                values["renewal_reminder_date"],
                now or self.clock.now(),
                settings.CONTRACT_REMINDER_DAYS,
            )

        contract = self.contracts.create(values)
        logger.info(f"Created contract {contract.id} with status {contract.status.value}")
        return contract

    def update_contract(
        self,
        contract_id: str,
        changes: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Contract:
        """
        Apply an explicit edit.

        Changing end_date re-derives the reminder date (unless supplied) and
        the status (unless supplied). A Cancelled contract keeps its status
        unless the edit sets one.
        """
        try:
            payload = ContractUpdate(**changes)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        values = payload.model_dump(exclude_unset=True)
        if not values:
            raise ValidationError("No fields provided for update")
        for field in ("equipment_id", "vendor", "start_date", "end_date", "status"):
            if field in values and values[field] is None:
                raise ValidationError(f"{field} cannot be cleared")

        current = self.contracts.get(contract_id)
        if current is None:
            raise MissingReferenceError("Contract", contract_id)
        if values.get("equipment_id") and self.equipment.get(values["equipment_id"]) is None:
            raise MissingReferenceError("Equipment", values["equipment_id"])

        start_date = values.get("start_date", current.start_date)
        end_date = values.get("end_date", current.end_date)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        if "end_date" in values and "renewal_reminder_date" not in values:
            values["renewal_reminder_date"] = default_reminder_date(end_date)

        dates_changed = "end_date" in values or "renewal_reminder_date" in values
        if (
            "status" not in values
            and dates_changed
            and current.status != ContractStatus.CANCELLED
        ):
            values["status"] = derive_contract_status(
                end_date,
                values.get("renewal_reminder_date", current.renewal_reminder_date),
                now or self.clock.now(),
                settings.CONTRACT_REMINDER_DAYS,
            )

        contract = self.contracts.update(contract_id, values)
        if contract is None:
            raise MissingReferenceError("Contract", contract_id)
        return contract


# Singleton instance
_contract_evaluator = None

def get_contract_evaluator() -> ContractLifecycleEvaluator:
    """Get singleton instance of ContractLifecycleEvaluator"""
    global _contract_evaluator
    if _contract_evaluator is None:
        _contract_evaluator = ContractLifecycleEvaluator()
    return _contract_evaluator
