"""
Models package for the CMMS core.
"""

# Domain models
from .domain import (
    Equipment,
    SparePart,
    User,
    PartUsage,
    PMSchedule,
    WorkOrder,
    Contract,
    MaintenanceHistory,
    ComplianceRecord,
    Report,
    Frequency,
    WorkOrderType,
    WorkOrderPriority,
    WorkOrderStatus,
    ContractStatus,
    ReportType,
)

# Request models
from .requests import (
    ScheduleCreate,
    ScheduleUpdate,
    ContractCreate,
    ContractUpdate,
)

# Result models
from .results import (
    ItemError,
    GenerationResult,
    ContractEvaluationResult,
    EquipmentDowntime,
    EquipmentCost,
    TechnicianEfficiency,
    ComplianceDue,
)

__version__ = "0.1.0"

__all__ = [
    # Domain
    "Equipment",
    "SparePart",
    "User",
    "PartUsage",
    "PMSchedule",
    "WorkOrder",
    "Contract",
    "MaintenanceHistory",
    "ComplianceRecord",
    "Report",
    "Frequency",
    "WorkOrderType",
    "WorkOrderPriority",
    "WorkOrderStatus",
    "ContractStatus",
    "ReportType",
    # Requests
    "ScheduleCreate",
    "ScheduleUpdate",
    "ContractCreate",
    "ContractUpdate",
    # Results
    "ItemError",
    "GenerationResult",
    "ContractEvaluationResult",
    "EquipmentDowntime",
    "EquipmentCost",
    "TechnicianEfficiency",
    "ComplianceDue",
]
