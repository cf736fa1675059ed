from typing import Optional


class TutorTimeError(Exception):
    """Base error for domain operations."""

    code = "ERROR"
    # True when the operation may have left the system half-done
    inconsistent = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TutorTimeError):
    """Input has the wrong shape or is out of range."""

    code = "VALIDATION_ERROR"


class NotAssigned(TutorTimeError):
    """Tutor is not assigned to the subject."""

    code = "NOT_ASSIGNED"


class NotFound(TutorTimeError):
    code = "NOT_FOUND"


class PermissionDenied(TutorTimeError):
    code = "PERMISSION_DENIED"


class DuplicateName(TutorTimeError):
    code = "DUPLICATE_NAME"


class DuplicateEmail(TutorTimeError):
    code = "DUPLICATE_EMAIL"


class AlreadyDecided(TutorTimeError):
    """Timesheet is no longer pending."""

    code = "ALREADY_DECIDED"


class PartialInviteFailure(TutorTimeError):
    """Identity account exists but its tutor profile could not be written.

    Needs manual reconciliation: the account for ``email`` (``user_id``)
    is live in the identity provider without a matching tutor profile.
    """

    code = "PARTIAL_INVITE_FAILURE"
    inconsistent = True

    def __init__(self, message: str, user_id: str, email: str, stage: str = "profile"):
        super().__init__(message, {"user_id": user_id, "email": email, "stage": stage})
        self.user_id = user_id
        self.email = email
        self.stage = stage


class StoreError(TutorTimeError):
    """Data store or identity provider failure. Safe to retry the whole operation."""

    code = "STORE_ERROR"


class ConflictError(StoreError):
    """Unique constraint violated by a write."""

    code = "CONFLICT"

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message, {"constraint": constraint} if constraint else None)
        self.constraint = constraint


class CascadeError(StoreError):
    """A cascade plan stopped part way through."""

    code = "CASCADE_FAILED"

    def __init__(self, message: str, completed: list, failed: str):
        super().__init__(message, {"completed": completed, "failed": failed})
        self.completed = completed
        self.failed = failed
        # Nothing was written if the first step failed
        self.inconsistent = bool(completed)


class AccountExists(TutorTimeError):
    """Identity provider already has an account for this email."""

    code = "ACCOUNT_EXISTS"
