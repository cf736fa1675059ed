from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from app.schemas.auth import Role

# --- Profiles (auth.users.id -> profiles.id) ---
class Profile(BaseModel):
    id: str  # auth.users.id
    role: Role = Role.tutor
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Rows created before roles existed have a null role
    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v):
        return v or Role.tutor

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email or self.id


# Fields a tutor may change on their own profile
class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None


# --- Tutors (admin managed) ---
class TutorCreate(BaseModel):
    email: str
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: Optional[str] = None

class TutorUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None

class PendingInvite(BaseModel):
    user_id: str
    email: str
    method: str  # "invite" or "create"
    invited_at: datetime
