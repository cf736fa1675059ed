from pydantic import BaseModel, Field, RootModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

# --- Tutor subject assignments (tutor_subjects) ---
class Assignment(BaseModel):
    tutor_id: str
    subject_id: str
    rate_per_hour: Decimal = Field(..., ge=0)
    assigned_at: Optional[datetime] = None

class AssignmentIn(BaseModel):
    subject_id: str
    rate_per_hour: Decimal = Field(Decimal("0"), ge=0)

class AssignmentsIn(RootModel):
    root: List[AssignmentIn]

# Assignment joined with its subject name, for profile and roster views
class AssignmentView(Assignment):
    subject_name: Optional[str] = None
