"""
Timesheet lifecycle: submission by tutors and approval by admins.

The only state machine in the system lives here:

    pending -> approved
    pending -> rejected

Both outcomes are terminal. The pending check is part of the update itself
(``status = pending`` is in the filter), so two admins deciding the same
timesheet cannot both succeed.
"""
import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Union

from app.schemas.auth import AuthContext
from app.schemas.profile import Profile
from app.schemas.timesheet import Timesheet, TimesheetStatus, TimesheetView
from app.services.errors import AlreadyDecided, NotAssigned, NotFound, PermissionDenied, ValidationError
from app.services.profiles import require_admin
from app.services.store import PROFILES, SUBJECTS, TIMESHEETS, TUTOR_SUBJECTS, DataStore, Embed, Order

logger = logging.getLogger(__name__)

# hours_worked is numeric(5, 2)
HOURS_STEP = Decimal("0.01")
MAX_HOURS = Decimal("999.99")

TIMESHEET_ORDER = [Order("date_worked", desc=True), Order("created_at", desc=True)]
TIMESHEET_EMBEDS = [
    Embed("subject", SUBJECTS, "subject_id", "name"),
    Embed("tutor", PROFILES, "tutor_id", "first_name, last_name, email"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_hours(hours_worked) -> Decimal:
    try:
        hours = Decimal(str(hours_worked))
    except (InvalidOperation, ValueError):
        raise ValidationError("Hours worked must be a number", {"hours_worked": str(hours_worked)})
    if not hours.is_finite() or hours <= 0:
        raise ValidationError("Hours must be greater than 0", {"hours_worked": str(hours_worked)})
    if hours > MAX_HOURS:
        raise ValidationError(f"Hours cannot exceed {MAX_HOURS}", {"hours_worked": str(hours_worked)})
    hours = hours.quantize(HOURS_STEP, rounding=ROUND_HALF_UP)
    if hours <= 0:
        raise ValidationError("Hours must be at least 0.01", {"hours_worked": str(hours_worked)})
    return hours


def _parse_date(date_worked: Union[date, str]) -> date:
    if isinstance(date_worked, datetime):
        return date_worked.date()
    if isinstance(date_worked, date):
        return date_worked
    try:
        return date.fromisoformat(str(date_worked))
    except ValueError:
        raise ValidationError("Date worked must be YYYY-MM-DD", {"date_worked": str(date_worked)})


class TimesheetService:
    def __init__(self, store: DataStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or _utcnow

    def resolve_rate(self, tutor_id: str, subject_id: str) -> Decimal:
        """Current hourly rate for a tutor on a subject."""
        rows = self.store.select(TUTOR_SUBJECTS, {"tutor_id": tutor_id, "subject_id": subject_id})
        if not rows:
            raise NotAssigned(f"Tutor {tutor_id} is not assigned to subject {subject_id}")
        return Decimal(str(rows[0]["rate_per_hour"] or 0))

    def submit(
        self,
        ctx: AuthContext,
        subject_id: str,
        hours_worked,
        date_worked: Union[date, str],
        notes: Optional[str] = None,
    ) -> Timesheet:
        hours = _parse_hours(hours_worked)
        worked_on = _parse_date(date_worked)
        if worked_on > self.clock().date():
            raise ValidationError("Date worked cannot be in the future", {"date_worked": worked_on.isoformat()})

        assignment = self.store.select(
            TUTOR_SUBJECTS,
            {"tutor_id": ctx.user_id, "subject_id": subject_id},
            embed=[Embed("subject", SUBJECTS, "subject_id", "name")],
        )
        if not assignment:
            logger.warning(f"Tutor {ctx.user_id} tried to log hours for unassigned subject {subject_id}")
            raise NotAssigned(f"You are not assigned to subject {subject_id}")

        subject = assignment[0].get("subject") or {}
        tutor_rows = self.store.select(PROFILES, {"id": ctx.user_id})
        tutor_name = Profile(**tutor_rows[0]).display_name if tutor_rows else ctx.email

        now = self.clock()
        rows = self.store.insert(TIMESHEETS, [{
            "tutor_id": ctx.user_id,
            "subject_id": subject_id,
            "tutor_name": tutor_name,
            "subject_name": subject.get("name"),
            "hours_worked": hours,
            "date_worked": worked_on,
            "notes": (notes or "").strip() or None,
            "status": TimesheetStatus.pending,
            "approved_by": None,
            "approval_date": None,
            "created_at": now,
            "updated_at": now,
        }])
        timesheet = Timesheet(**rows[0])
        logger.info(f"Tutor {ctx.user_id} submitted timesheet {timesheet.id} ({hours}h on {worked_on})")
        return timesheet

    def list(
        self,
        ctx: AuthContext,
        tutor_id: Optional[str] = None,
        status: Optional[Union[TimesheetStatus, str]] = None,
    ) -> List[TimesheetView]:
        """Timesheets newest first, joined with subject and tutor names.

        Tutors only ever see their own timesheets.
        """
        if not ctx.is_admin:
            if tutor_id and tutor_id != ctx.user_id:
                raise PermissionDenied("Tutors can only view their own timesheets")
            tutor_id = ctx.user_id

        filters = {}
        if tutor_id:
            filters["tutor_id"] = tutor_id
        if status:
            try:
                filters["status"] = TimesheetStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown timesheet status '{status}'")

        rows = self.store.select(TIMESHEETS, filters, order=TIMESHEET_ORDER, embed=TIMESHEET_EMBEDS)

        rates = self._rates_for({r["tutor_id"] for r in rows if r.get("tutor_id")})
        return [self._to_view(row, rates) for row in rows]

    def decide(self, ctx: AuthContext, timesheet_id: str, approve: bool) -> Timesheet:
        require_admin(ctx)

        now = self.clock()
        patch = {
            "status": TimesheetStatus.approved if approve else TimesheetStatus.rejected,
            "approved_by": ctx.user_id if approve else None,
            "approval_date": now if approve else None,
            "updated_at": now,
        }
        rows = self.store.update(TIMESHEETS, {"id": timesheet_id, "status": TimesheetStatus.pending}, patch)

        if not rows:
            current = self.store.select(TIMESHEETS, {"id": timesheet_id}, columns="id, status")
            if not current:
                raise NotFound(f"Timesheet {timesheet_id} not found")
            logger.warning(f"Timesheet {timesheet_id} already {current[0]['status']}, ignoring decision by {ctx.user_id}")
            raise AlreadyDecided(
                f"Timesheet {timesheet_id} has already been {current[0]['status']}",
                {"status": current[0]["status"]},
            )

        timesheet = Timesheet(**rows[0])
        logger.info(f"Timesheet {timesheet_id} {timesheet.status.value} by {ctx.user_id}")
        return timesheet

    def _rates_for(self, tutor_ids) -> Dict[tuple, Decimal]:
        rates = {}
        for tutor_id in sorted(tutor_ids):
            for row in self.store.select(TUTOR_SUBJECTS, {"tutor_id": tutor_id}):
                rates[(row["tutor_id"], row["subject_id"])] = Decimal(str(row["rate_per_hour"] or 0))
        return rates

    def _to_view(self, row: dict, rates: Dict[tuple, Decimal]) -> TimesheetView:
        row = dict(row)
        subject = row.pop("subject", None) or {}
        tutor = row.pop("tutor", None)

        # Joined names win; snapshots cover deleted tutors and subjects
        if subject.get("name"):
            row["subject_name"] = subject["name"]
        if tutor:
            row["tutor_name"] = Profile(id=row.get("tutor_id") or "", **tutor).display_name

        view = TimesheetView(**row)
        rate = rates.get((view.tutor_id, view.subject_id))
        if rate is not None:
            view.rate_per_hour = rate
            view.amount = rate * view.hours_worked
        return view
