from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


class TimesheetStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# --- Timesheets ---
class Timesheet(BaseModel):
    id: str
    tutor_id: Optional[str] = None
    subject_id: Optional[str] = None
    tutor_name: Optional[str] = None
    subject_name: Optional[str] = None
    hours_worked: Decimal
    date_worked: date
    notes: Optional[str] = None
    status: TimesheetStatus = TimesheetStatus.pending
    approved_by: Optional[str] = None
    approval_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class TimesheetCreate(BaseModel):
    subject_id: str
    hours_worked: Decimal
    date_worked: date
    notes: Optional[str] = None

class TimesheetDecision(BaseModel):
    approve: bool

# Timesheet joined with subject/tutor names and the current rate, for history and approval lists
class TimesheetView(Timesheet):
    rate_per_hour: Optional[Decimal] = None
    amount: Optional[Decimal] = Field(None, description="rate_per_hour * hours_worked, display only")
