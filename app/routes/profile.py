from fastapi import APIRouter, Depends
from typing import List
from app.schemas.assignment import AssignmentView
from app.schemas.profile import Profile, ProfileUpdate
from app.dependencies.auth import user_supabase_client
from app.services.profiles import ProfileService

router = APIRouter()

# -------- Own profile --------
@router.get("", response_model=Profile)
def get_profile(context=Depends(user_supabase_client)):
    return ProfileService(context["store"]).get(context["auth"].user_id)

@router.put("", response_model=Profile)
def update_profile(profile: ProfileUpdate, context=Depends(user_supabase_client)):
    return ProfileService(context["store"]).update_own(context["auth"], profile)

# Subjects the signed in tutor teaches, with their rates
@router.get("/subjects", response_model=List[AssignmentView])
def get_my_subjects(context=Depends(user_supabase_client)):
    return ProfileService(context["store"]).my_assignments(context["auth"])
