from fastapi import APIRouter, Depends
from typing import List
from app.schemas.subject import Subject, SubjectCreate
from app.dependencies.auth import user_supabase_client
from app.services.roster import RosterService

router = APIRouter()

# -------- Subjects --------
@router.get("", response_model=List[Subject])
def get_all_subjects(context=Depends(user_supabase_client)):
    return RosterService(context["store"]).list_subjects()

@router.post("/subject", response_model=Subject, status_code=201)
def create_subject(subject: SubjectCreate, context=Depends(user_supabase_client)):
    return RosterService(context["store"]).add_subject(context["auth"], subject.name)

# Timesheets for the subject are kept, only assignments go with it
@router.delete("/subject/{subject_id}")
def delete_subject(subject_id: str, context=Depends(user_supabase_client)):
    RosterService(context["store"]).delete_subject(context["auth"], subject_id)
    return {"message": "Deleted"}
