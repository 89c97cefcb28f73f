"""
Services package for the CMMS core.
"""

from .pm_scheduler import (
    PMScheduler,
    get_pm_scheduler,
    advance_due_date,
)
from .contract_lifecycle import (
    ContractLifecycleEvaluator,
    get_contract_evaluator,
    derive_contract_status,
)
from .reporting import (
    ReportingAggregator,
    get_reporting_aggregator,
)
from .work_orders import WorkOrderLifecycle, can_transition

__version__ = "0.1.0"

__all__ = [
    "PMScheduler",
    "get_pm_scheduler",
    "advance_due_date",
    "ContractLifecycleEvaluator",
    "get_contract_evaluator",
    "derive_contract_status",
    "ReportingAggregator",
    "get_reporting_aggregator",
    "WorkOrderLifecycle",
    "can_transition",
]
