from pydantic import BaseModel
from typing import Optional
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    tutor = "tutor"


# --- Authenticated caller (auth.users.id -> profiles.id) ---
class AuthContext(BaseModel):
    user_id: str
    email: Optional[str] = None
    role: Role = Role.tutor

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin
