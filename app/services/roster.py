"""
Roster management: subjects, tutors and the per-subject rates tutors are paid.

Deleting a tutor or subject keeps its timesheets. They are detached (the
foreign key is nulled) and still show the names snapshotted at submission.
"""
import logging
import re
import secrets
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Union

from app.schemas.assignment import Assignment, AssignmentIn, AssignmentView
from app.schemas.auth import AuthContext, Role
from app.schemas.profile import PendingInvite, Profile, TutorUpdate
from app.schemas.subject import Subject
from app.services.assignments import load_assignments
from app.services.errors import (
    AccountExists,
    CascadeError,
    ConflictError,
    DuplicateEmail,
    DuplicateName,
    NotFound,
    PartialInviteFailure,
    StoreError,
    ValidationError,
)
from app.services.identity import IdentityProvider
from app.services.profiles import require_admin
from app.services.store import (
    PROFILES,
    SUBJECTS,
    TIMESHEETS,
    TUTOR_SUBJECTS,
    CascadePlan,
    DataStore,
    Order,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
INVITE_MODES = ("invite", "create")
TUTOR_FIELDS = ("first_name", "last_name", "email", "phone")


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address", {"email": email})
    return email


class RosterService:
    def __init__(
        self,
        store: DataStore,
        identity: Optional[IdentityProvider] = None,
        invite_mode: str = "invite",
        redirect_url: Optional[str] = None,
    ):
        if invite_mode not in INVITE_MODES:
            raise ValueError(f"Invalid invite mode '{invite_mode}', expected one of {INVITE_MODES}")
        self.store = store
        self.identity = identity
        self.invite_mode = invite_mode
        self.redirect_url = redirect_url

    # -------- Subjects --------

    def list_subjects(self) -> List[Subject]:
        rows = self.store.select(SUBJECTS, order=[Order("name")])
        return [Subject(**r) for r in rows]

    def add_subject(self, ctx: AuthContext, name: str) -> Subject:
        require_admin(ctx)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subject name is required")

        # Case-insensitive, so "Math" and "math" cannot coexist
        for existing in self.store.select(SUBJECTS, columns="id, name"):
            if existing["name"].strip().casefold() == name.casefold():
                raise DuplicateName(f"Subject '{existing['name']}' already exists", {"subject_id": existing["id"]})

        try:
            rows = self.store.insert(SUBJECTS, [{"name": name}])
        except ConflictError as e:
            raise DuplicateName(f"Subject '{name}' already exists") from e

        subject = Subject(**rows[0])
        logger.info(f"Admin {ctx.user_id} added subject {subject.id} '{subject.name}'")
        return subject

    def delete_subject(self, ctx: AuthContext, subject_id: str):
        require_admin(ctx)
        if not self.store.select(SUBJECTS, {"id": subject_id}, columns="id"):
            raise NotFound(f"Subject {subject_id} not found")

        plan = CascadePlan(rpc="delete_subject_cascade", params={"p_subject_id": subject_id}) \
            .detach(TIMESHEETS, "subject_id", subject_id) \
            .delete(TUTOR_SUBJECTS, subject_id=subject_id) \
            .delete(SUBJECTS, id=subject_id)
        self.store.run_cascade(plan)
        logger.info(f"Admin {ctx.user_id} deleted subject {subject_id}")

    # -------- Tutors --------

    def list_tutors(self, ctx: AuthContext) -> List[Profile]:
        require_admin(ctx)
        rows = self.store.select(PROFILES, {"role": Role.tutor}, order=[Order("last_name"), Order("first_name")])
        return [Profile(**r) for r in rows]

    def get_tutor(self, tutor_id: str) -> Profile:
        rows = self.store.select(PROFILES, {"id": tutor_id, "role": Role.tutor})
        if not rows:
            raise NotFound(f"Tutor {tutor_id} not found")
        return Profile(**rows[0])

    def invite_tutor(
        self,
        ctx: AuthContext,
        email: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> PendingInvite:
        """
        Create a tutor account and profile.

        The identity provider sends the tutor a link to set their password.
        There is no transaction spanning the identity provider and the data
        store: if the account is created but the profile write fails,
        ``PartialInviteFailure`` is raised with the new user id.
        """
        require_admin(ctx)
        email = normalize_email(email)
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name or not last_name:
            raise ValidationError("First and last name are required")
        phone = (phone or "").strip() or None

        if self.store.select(PROFILES, {"email": email}, columns="id"):
            logger.warning(f"Invite rejected, a profile with {email} already exists")
            raise DuplicateEmail(f"A user with email {email} already exists")

        if self.identity is None:
            raise StoreError("No identity provider configured for invites")

        metadata = {"first_name": first_name, "last_name": last_name, "phone": phone}
        try:
            if self.invite_mode == "invite":
                outcome = self.identity.invite_by_email(email, metadata, redirect_to=self.redirect_url)
            else:
                outcome = self.identity.create_account(email, secrets.token_urlsafe(16), metadata)
        except AccountExists as e:
            raise DuplicateEmail(f"A user with email {email} already exists") from e

        now = datetime.now(timezone.utc)
        profile = {
            "role": Role.tutor,
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "phone": phone,
            "updated_at": now,
        }
        try:
            # The signup trigger may already have created a bare profile
            rows = self.store.update(PROFILES, {"id": outcome.user_id}, profile)
            if not rows:
                self.store.insert(PROFILES, [{"id": outcome.user_id, "created_at": now, **profile}])
        except StoreError as e:
            logger.error(f"Account {outcome.user_id} created for {email} but its profile was not saved: {e.message}")
            raise PartialInviteFailure(
                f"Account for {email} was created but the tutor profile could not be saved: {e.message}",
                user_id=outcome.user_id,
                email=email,
            ) from e

        if self.invite_mode == "create":
            try:
                self.identity.send_password_reset(email, redirect_to=self.redirect_url)
            except StoreError as e:
                # Account and profile are fine; the admin can resend the link
                logger.error(f"Could not send password setup link to {email}: {e.message}")

        logger.info(f"Admin {ctx.user_id} invited tutor {outcome.user_id} ({email}) via {self.invite_mode}")
        return PendingInvite(user_id=outcome.user_id, email=email, method=self.invite_mode, invited_at=now)

    def update_tutor(self, ctx: AuthContext, tutor_id: str, fields: Union[TutorUpdate, dict]) -> Profile:
        """Update a tutor's contact fields. Role and id are never touched."""
        require_admin(ctx)
        if isinstance(fields, TutorUpdate):
            fields = fields.model_dump(exclude_unset=True)
        patch = {k: v for k, v in fields.items() if k in TUTOR_FIELDS}
        current = self.get_tutor(tutor_id)

        for key in ("first_name", "last_name"):
            if key in patch:
                patch[key] = (patch[key] or "").strip()
                if not patch[key]:
                    raise ValidationError(f"{key} cannot be empty")
        if "email" in patch:
            patch["email"] = normalize_email(patch["email"])
            clash = self.store.select(PROFILES, {"email": patch["email"]}, columns="id")
            if any(r["id"] != tutor_id for r in clash):
                raise DuplicateEmail(f"A user with email {patch['email']} already exists")

        if not patch:
            return current

        patch["updated_at"] = datetime.now(timezone.utc)
        try:
            rows = self.store.update(PROFILES, {"id": tutor_id, "role": Role.tutor}, patch)
        except ConflictError as e:
            raise DuplicateEmail(f"A user with email {patch.get('email')} already exists") from e
        if not rows:
            raise NotFound(f"Tutor {tutor_id} not found")
        logger.info(f"Admin {ctx.user_id} updated tutor {tutor_id}: {sorted(patch)}")
        return Profile(**rows[0])

    def delete_tutor(self, ctx: AuthContext, tutor_id: str):
        require_admin(ctx)
        self.get_tutor(tutor_id)

        plan = CascadePlan(rpc="delete_tutor_cascade", params={"p_tutor_id": tutor_id}) \
            .detach(TIMESHEETS, "tutor_id", tutor_id) \
            .delete(TUTOR_SUBJECTS, tutor_id=tutor_id) \
            .delete(PROFILES, id=tutor_id)
        self.store.run_cascade(plan)

        # The email stays registered until the login account is gone
        if self.identity is not None:
            try:
                self.identity.delete_account(tutor_id)
            except StoreError as e:
                logger.error(f"Tutor {tutor_id} removed from the roster but their account was not deleted: {e.message}")
                raise CascadeError(
                    f"Tutor {tutor_id} was removed but their login account could not be deleted: {e.message}",
                    completed=[step.describe() for step in plan.steps],
                    failed="delete identity account",
                ) from e
        logger.info(f"Admin {ctx.user_id} deleted tutor {tutor_id}")

    # -------- Assignments --------

    def get_assignments(self, tutor_id: str) -> List[AssignmentView]:
        return load_assignments(self.store, tutor_id)

    def set_assignments(
        self,
        ctx: AuthContext,
        tutor_id: str,
        desired: Iterable[Union[AssignmentIn, dict]],
    ) -> List[Assignment]:
        """
        Replace every assignment of a tutor with ``desired``.

        Existing rows are deleted and the desired set inserted in one store
        transaction, rather than diffed; unchanged assignments get a fresh
        ``assigned_at``.
        """
        require_admin(ctx)
        wanted = []
        seen = set()
        for item in desired:
            if isinstance(item, dict):
                subject_id, raw_rate = item.get("subject_id"), item.get("rate_per_hour", 0)
            else:
                subject_id, raw_rate = item.subject_id, item.rate_per_hour
            if not subject_id:
                raise ValidationError("Each assignment needs a subject_id")
            try:
                rate = Decimal(str(raw_rate))
            except InvalidOperation:
                raise ValidationError("Rate must be a number", {"subject_id": subject_id})
            if not rate.is_finite() or rate < 0:
                raise ValidationError("Rate cannot be negative", {"subject_id": subject_id})
            if subject_id in seen:
                raise ValidationError(f"Subject {subject_id} assigned more than once")
            seen.add(subject_id)
            wanted.append({"tutor_id": tutor_id, "subject_id": subject_id, "rate_per_hour": rate})

        self.get_tutor(tutor_id)
        if wanted:
            known = {s["id"] for s in self.store.select(SUBJECTS, columns="id")}
            missing = sorted(seen - known)
            if missing:
                raise NotFound(f"Unknown subjects: {', '.join(missing)}", {"subject_ids": missing})

        now = datetime.now(timezone.utc)
        rows = self.store.replace(TUTOR_SUBJECTS, {"tutor_id": tutor_id}, [{**w, "assigned_at": now} for w in wanted])

        logger.info(f"Admin {ctx.user_id} set {len(rows)} assignments for tutor {tutor_id}")
        return [Assignment(**r) for r in rows]
