"""
Request Models - Pydantic models for operator-supplied input.

These models validate the payloads used to create or edit schedules and
contracts before anything is written to the store.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .domain import ContractStatus, Frequency, UTCDateTime


# ============================================================================
# Schedule Requests
# ============================================================================

class ScheduleCreate(BaseModel):
    """Payload for creating a preventive maintenance schedule."""

    equipment_id: str = Field(..., min_length=1, description="Equipment the task applies to")
    task_description: str = Field(..., min_length=1, description="What the technician should do")
    frequency: Frequency = Field(..., description="Recurrence of the task")
    next_due_date: UTCDateTime = Field(..., description="First occurrence")
    is_active: bool = Field(default=True, description="Inactive schedules never fire")
    assigned_to_user_id: Optional[str] = Field(default=None, description="Default assignee")
    notes: Optional[str] = Field(default=None, description="Free-form notes")

    @field_validator("frequency", mode="before")
    @classmethod
    def _normalize_frequency(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("assigned_to_user_id", mode="before")
    @classmethod
    def _blank_assignee_is_none(cls, value):
        return value or None


class ScheduleUpdate(BaseModel):
    """Partial update of a schedule. Only supplied fields are written."""

    equipment_id: Optional[str] = Field(default=None, min_length=1)
    task_description: Optional[str] = Field(default=None, min_length=1)
    frequency: Optional[Frequency] = None
    next_due_date: Optional[UTCDateTime] = None
    is_active: Optional[bool] = None
    assigned_to_user_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def _normalize_frequency(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


# ============================================================================
# Contract Requests
# ============================================================================

class ContractCreate(BaseModel):
    """Payload for creating a service contract."""

    equipment_id: str = Field(..., min_length=1)
    vendor: str = Field(..., min_length=1)
    start_date: UTCDateTime
    end_date: UTCDateTime
    details: str = Field(..., min_length=1)
    renewal_reminder_date: Optional[UTCDateTime] = Field(
        default=None, description="Defaults to end_date minus the reminder offset"
    )
    status: Optional[ContractStatus] = Field(
        default=None, description="Derived from dates unless supplied"
    )
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class ContractUpdate(BaseModel):
    """Partial update of a contract. Only supplied fields are written."""

    equipment_id: Optional[str] = Field(default=None, min_length=1)
    vendor: Optional[str] = Field(default=None, min_length=1)
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    details: Optional[str] = None
    renewal_reminder_date: Optional[UTCDateTime] = None
    status: Optional[ContractStatus] = None
    notes: Optional[str] = None
