from fastapi import APIRouter, Depends
from app.dependencies.auth import user_supabase_client

router = APIRouter()

@router.get("/me")
def get_me(context=Depends(user_supabase_client)):
    ctx = context["auth"]
    return {
        "user": context["profile"].model_dump(mode="json"),
        "role": ctx.role.value,
        "is_admin": ctx.is_admin,
    }

@router.post("/sign-out")
def sign_out(context=Depends(user_supabase_client)):
    context["identity"].sign_out()
    return {"message": "Signed out"}
