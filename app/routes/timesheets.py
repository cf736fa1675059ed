from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from app.schemas.timesheet import Timesheet, TimesheetCreate, TimesheetDecision, TimesheetStatus, TimesheetView
from app.dependencies.auth import user_supabase_client
from app.services.timesheets import TimesheetService

router = APIRouter()

# -------- Timesheet history (tutors see their own, admins see all) --------
@router.get("", response_model=List[TimesheetView])
def get_timesheets(
    status: Optional[TimesheetStatus] = Query(None),
    tutor_id: Optional[str] = Query(None),
    context=Depends(user_supabase_client)
):
    service = TimesheetService(context["store"])
    return service.list(context["auth"], tutor_id=tutor_id, status=status)

# -------- Approval queue --------
@router.get("/pending", response_model=List[TimesheetView])
def get_pending_timesheets(context=Depends(user_supabase_client)):
    service = TimesheetService(context["store"])
    return service.list(context["auth"], status=TimesheetStatus.pending)

# -------- Log hours --------
@router.post("/timesheet", response_model=Timesheet, status_code=201)
def submit_timesheet(timesheet: TimesheetCreate, context=Depends(user_supabase_client)):
    service = TimesheetService(context["store"])
    return service.submit(
        context["auth"],
        subject_id=timesheet.subject_id,
        hours_worked=timesheet.hours_worked,
        date_worked=timesheet.date_worked,
        notes=timesheet.notes,
    )

# -------- Approve / reject --------
@router.post("/{timesheet_id}/decision", response_model=Timesheet)
def decide_timesheet(timesheet_id: str, decision: TimesheetDecision, context=Depends(user_supabase_client)):
    service = TimesheetService(context["store"])
    return service.decide(context["auth"], timesheet_id, approve=decision.approve)

@router.post("/{timesheet_id}/approve", response_model=Timesheet)
def approve_timesheet(timesheet_id: str, context=Depends(user_supabase_client)):
    service = TimesheetService(context["store"])
    return service.decide(context["auth"], timesheet_id, approve=True)

@router.post("/{timesheet_id}/reject", response_model=Timesheet)
def reject_timesheet(timesheet_id: str, context=Depends(user_supabase_client)):
    service = TimesheetService(context["store"])
    return service.decide(context["auth"], timesheet_id, approve=False)
