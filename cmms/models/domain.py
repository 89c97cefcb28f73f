"""
Domain Models - Pydantic models for CMMS entities.

These models represent the maintenance-management entities (schedules,
work orders, contracts, reports, etc.) and are used for data validation
and serialization when interacting with the cmms schema.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, List, Any, Dict

from pydantic import AfterValidator, BaseModel, Field, ConfigDict

from cmms.utils.clock import as_utc


# Timestamps are held as aware UTC whatever the column type returned
UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


# ============================================================================
# Enums
# ============================================================================

class Frequency(str, Enum):
    """Recurrence of a preventive maintenance schedule."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class WorkOrderType(str, Enum):
    """Kind of maintenance work."""
    PREVENTIVE = "Preventive"
    CORRECTIVE = "Corrective"


class WorkOrderPriority(str, Enum):
    """Priority values for work orders."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class WorkOrderStatus(str, Enum):
    """Status values for work orders."""
    REPORTED = "Reported"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ContractStatus(str, Enum):
    """Status values for service contracts."""
    ACTIVE = "Active"
    PENDING_RENEWAL = "Pending Renewal"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"


class ReportType(str, Enum):
    """Report categories."""
    PERFORMANCE = "Performance"
    FINANCIAL = "Financial"
    COMPLIANCE = "Compliance"
    STAFF_EFFICIENCY = "StaffEfficiency"


# ============================================================================
# Reference Models (read-only lookups)
# ============================================================================

class Equipment(BaseModel):
    """Equipment entity from cmms.equipment table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    serial_number: str
    manufacturer_name: Optional[str] = None
    model_number: Optional[str] = None
    location_description: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.manufacturer_name, self.model_number) if p)
        return f"{name} (S/N: {self.serial_number})" if name else f"S/N: {self.serial_number}"


class SparePart(BaseModel):
    """Spare part entity from cmms.spare_parts table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    unit_cost: Decimal = Decimal("0")
    quantity: int = Field(default=0, ge=0, description="Units in stock")


class User(BaseModel):
    """User entity from cmms.users table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    role: Optional[str] = None


# ============================================================================
# Domain Models
# ============================================================================

class PartUsage(BaseModel):
    """A single spare part consumed by a work order."""

    part_id: str
    quantity: int = Field(ge=0)


class PMSchedule(BaseModel):
    """Preventive maintenance schedule from cmms.pm_schedules table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    task_description: str
    # Kept as text so legacy rows with an unknown frequency still load
    frequency: str
    next_due_date: UTCDateTime
    last_generated_date: Optional[UTCDateTime] = None
    is_active: bool = True
    assigned_to_user_id: Optional[str] = None
    notes: Optional[str] = None


class WorkOrder(BaseModel):
    """Work order entity from cmms.work_orders table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    issue: str
    description: Optional[str] = None
    type: WorkOrderType
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    status: WorkOrderStatus
    reported_by: Optional[str] = None
    reported_at: Optional[UTCDateTime] = None
    completed_at: Optional[UTCDateTime] = None
    assigned_to: Optional[str] = None
    cost: Optional[Decimal] = None
    parts_used: Optional[List[PartUsage]] = None


class Contract(BaseModel):
    """Service contract entity from cmms.contracts table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    vendor: str
    start_date: UTCDateTime
    end_date: UTCDateTime
    renewal_reminder_date: Optional[UTCDateTime] = None
    status: ContractStatus
    details: Optional[str] = None
    notes: Optional[str] = None


class MaintenanceHistory(BaseModel):
    """Maintenance record from cmms.maintenance_history table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    type: str
    description: Optional[str] = None
    performed_by: Optional[str] = None
    date: str  # ISO date string, as recorded by technicians
    cost: Optional[Decimal] = None
    parts_used: Optional[str] = None


class ComplianceRecord(BaseModel):
    """Regulatory compliance check from cmms.compliance table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    standard: str
    # Free text such as compliant, pending, expired or non-compliant
    status: str
    last_check: Optional[UTCDateTime] = None
    next_due: UTCDateTime
    notes: Optional[str] = None


class Report(BaseModel):
    """Generated report from cmms.reports table. Never updated once written."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    type: ReportType
    title: str
    content: str
    period: str
    metrics: str
    generated_by: str
    generated_at: UTCDateTime

    @property
    def content_data(self) -> Any:
        """Decoded report content"""
        return json.loads(self.content)

    @property
    def metrics_data(self) -> Dict[str, Any]:
        """Decoded report metrics"""
        return json.loads(self.metrics)
