from pydantic import BaseModel
from typing import Optional
from datetime import datetime

# --- Subjects ---
class Subject(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None

class SubjectCreate(BaseModel):
    name: str
