import logging
from datetime import datetime, timezone
from typing import List, Optional

from app.schemas.assignment import AssignmentView
from app.schemas.auth import AuthContext, Role
from app.schemas.profile import Profile, ProfileUpdate
from app.services.assignments import load_assignments
from app.services.errors import ConflictError, NotFound, PermissionDenied, StoreError, ValidationError
from app.services.store import PROFILES, DataStore

logger = logging.getLogger(__name__)


def require_admin(ctx: AuthContext):
    # Advisory only, row level security is what actually protects the tables
    if not ctx.is_admin:
        logger.warning(f"User {ctx.user_id} attempted an admin operation")
        raise PermissionDenied("Administrator role required")


def _is_bootstrap_admin(email: Optional[str], admin_email: Optional[str]) -> bool:
    return bool(email and admin_email) and email.strip().lower() == admin_email.strip().lower()


def ensure_profile(store: DataStore, user_id: str, email: Optional[str], admin_email: Optional[str] = None) -> Profile:
    """
    Return the profile for an authenticated user, provisioning it on first access.

    New profiles get the tutor role unless ``email`` is the bootstrap admin
    address. A bootstrap admin found with any other role is corrected.
    """
    wants_admin = _is_bootstrap_admin(email, admin_email)
    rows = store.select(PROFILES, {"id": user_id})

    if not rows:
        role = Role.admin if wants_admin else Role.tutor
        logger.info(f"Provisioning {role.value} profile for user {user_id}")
        try:
            rows = store.insert(PROFILES, [{
                "id": user_id,
                "role": role,
                "email": email.strip().lower() if email else None,
            }])
        except ConflictError:
            # Another request (or the signup trigger) created it first
            rows = store.select(PROFILES, {"id": user_id})
        if not rows:
            raise StoreError(f"Profile for user {user_id} could not be provisioned")

    profile = Profile(**rows[0])
    if wants_admin and profile.role != Role.admin:
        logger.warning(f"Correcting role of bootstrap admin {user_id} from {profile.role.value} to admin")
        updated = store.update(PROFILES, {"id": user_id}, {
            "role": Role.admin,
            "updated_at": datetime.now(timezone.utc),
        })
        profile = Profile(**updated[0]) if updated else profile.model_copy(update={"role": Role.admin})
    return profile


class ProfileService:
    """Self-service profile reads and edits for the signed in user."""

    def __init__(self, store: DataStore):
        self.store = store

    def get(self, user_id: str) -> Profile:
        rows = self.store.select(PROFILES, {"id": user_id})
        if not rows:
            raise NotFound(f"Profile {user_id} not found")
        return Profile(**rows[0])

    def update_own(self, ctx: AuthContext, fields: ProfileUpdate) -> Profile:
        patch = fields.model_dump(exclude_unset=True)
        for key in ("first_name", "last_name"):
            if key in patch and not (patch[key] or "").strip():
                raise ValidationError(f"{key} cannot be empty")
        if not patch:
            return self.get(ctx.user_id)

        patch["updated_at"] = datetime.now(timezone.utc)
        rows = self.store.update(PROFILES, {"id": ctx.user_id}, patch)
        if not rows:
            raise NotFound(f"Profile {ctx.user_id} not found")
        logger.info(f"User {ctx.user_id} updated their profile")
        return Profile(**rows[0])

    def my_assignments(self, ctx: AuthContext) -> List[AssignmentView]:
        return load_assignments(self.store, ctx.user_id)
