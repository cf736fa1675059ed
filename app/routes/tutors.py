from fastapi import APIRouter, Depends
from typing import List
from app import config
from app.schemas.assignment import Assignment, AssignmentsIn, AssignmentView
from app.schemas.profile import PendingInvite, Profile, TutorCreate, TutorUpdate
from app.dependencies.auth import user_supabase_client
from app.services.roster import RosterService

router = APIRouter()


def roster_service(context) -> RosterService:
    return RosterService(
        context["store"],
        context["identity"],
        invite_mode=config.TUTOR_INVITE_MODE,
        redirect_url=config.INVITE_REDIRECT_URL,
    )

# -------- Tutors --------
@router.get("", response_model=List[Profile])
def get_all_tutors(context=Depends(user_supabase_client)):
    return roster_service(context).list_tutors(context["auth"])

@router.post("/invite", response_model=PendingInvite, status_code=201)
def invite_tutor(tutor: TutorCreate, context=Depends(user_supabase_client)):
    return roster_service(context).invite_tutor(
        context["auth"],
        email=tutor.email,
        first_name=tutor.first_name,
        last_name=tutor.last_name,
        phone=tutor.phone,
    )

@router.put("/tutor/{tutor_id}", response_model=Profile)
def update_tutor(tutor_id: str, tutor: TutorUpdate, context=Depends(user_supabase_client)):
    return roster_service(context).update_tutor(context["auth"], tutor_id, tutor)

@router.delete("/tutor/{tutor_id}")
def delete_tutor(tutor_id: str, context=Depends(user_supabase_client)):
    roster_service(context).delete_tutor(context["auth"], tutor_id)
    return {"message": "Deleted"}

# -------- Subject assignments and rates --------
@router.get("/tutor/{tutor_id}/assignments", response_model=List[AssignmentView])
def get_tutor_assignments(tutor_id: str, context=Depends(user_supabase_client)):
    return roster_service(context).get_assignments(tutor_id)

# Replaces the tutor's whole assignment set
@router.put("/tutor/{tutor_id}/assignments", response_model=List[Assignment])
def set_tutor_assignments(tutor_id: str, assignments: AssignmentsIn, context=Depends(user_supabase_client)):
    return roster_service(context).set_assignments(context["auth"], tutor_id, assignments.root)
