"""
Result Models - Pydantic models returned by the batch passes and used as
structured report content.
"""

from typing import Optional, List, Dict

from pydantic import BaseModel, Field


# ============================================================================
# Batch Pass Results
# ============================================================================

class ItemError(BaseModel):
    """A single item that failed during a batch pass."""

    item_id: str = Field(..., description="Schedule or contract identifier")
    error: str = Field(..., description="Failure message")


class GenerationResult(BaseModel):
    """Outcome of one preventive maintenance generation pass."""

    generated_count: int = Field(default=0, description="Work orders created")
    error_count: int = Field(default=0, description="Schedules that failed")
    errors: List[ItemError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list, description="Data-quality warnings")
    work_order_ids: List[str] = Field(default_factory=list)


class ContractEvaluationResult(BaseModel):
    """Outcome of one contract status evaluation pass."""

    updated_count: int = Field(default=0)
    newly_expired_count: int = Field(default=0)
    newly_pending_renewal_count: int = Field(default=0)
    error_count: int = Field(default=0)
    errors: List[ItemError] = Field(default_factory=list)


# ============================================================================
# Report Content
# ============================================================================

class EquipmentDowntime(BaseModel):
    """Downtime summary for one piece of equipment."""

    equipment_id: str
    equipment_name: Optional[str] = None
    total_downtime_hours: float
    work_order_count: int
    average_downtime_hours: float


class EquipmentCost(BaseModel):
    """Work-order cost breakdown for one piece of equipment."""

    equipment_id: str
    equipment_name: Optional[str] = None
    total_direct_costs: float
    total_parts_cost: float
    total_combined_cost: float
    work_order_count: int


class TechnicianEfficiency(BaseModel):
    """Completion statistics for one technician."""

    technician_id: str
    technician_name: str
    total_completed: int
    completed_by_type: Dict[str, int] = Field(default_factory=dict)
    avg_completion_time_hours: float


class ComplianceDue(BaseModel):
    """A compliance check falling due inside the report window."""

    record_id: str
    equipment_id: str
    equipment_name: Optional[str] = None
    standard: str
    status: str
    next_due: str = Field(..., description="ISO 8601 UTC timestamp")
    days_until_due: int
