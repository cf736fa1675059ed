"""
Identity provider access (Supabase GoTrue).

Covers the calls the domain needs: who is signed in, signing out, and the two
ways of onboarding a tutor (invite email, or direct account creation followed
by a password reset email), plus removing the account of a deleted tutor.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx
from supabase import AuthApiError, AuthError

from app.services.errors import AccountExists, StoreError

logger = logging.getLogger(__name__)

ACCOUNT_EXISTS_CODES = {"email_exists", "user_already_exists"}
USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class Session:
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class InviteOutcome:
    user_id: str
    email: str


class IdentityProvider(Protocol):
    def get_current_session(self) -> Optional[Session]: ...

    def sign_out(self) -> None: ...

    def invite_by_email(self, email: str, metadata: Dict[str, Any], redirect_to: Optional[str] = None) -> InviteOutcome: ...

    def create_account(self, email: str, password: str, metadata: Dict[str, Any]) -> InviteOutcome: ...

    def send_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None: ...

    def delete_account(self, user_id: str) -> None: ...


def _is_account_exists(e: AuthError) -> bool:
    if getattr(e, "code", None) in ACCOUNT_EXISTS_CODES:
        return True
    return "already" in str(e).lower() and "registered" in str(e).lower()


class SupabaseIdentityProvider:
    """``IdentityProvider`` over ``client.auth``.

    ``access_token`` is the caller's bearer token; ``admin_client`` must be a
    service-role client and is only needed for invite, create and delete.
    """

    def __init__(self, client, access_token: Optional[str] = None, admin_client=None):
        self.client = client
        self.access_token = access_token
        self.admin_client = admin_client

    def _call(self, action: str, fn, *args, ignore_codes=(), **kwargs):
        try:
            return fn(*args, **kwargs)
        except AuthApiError as e:
            if getattr(e, "code", None) in ignore_codes:
                logger.info(f"Supabase auth {action}: ignoring {e.code}")
                return None
            if _is_account_exists(e):
                raise AccountExists(f"An account already exists: {e.message}") from e
            logger.error(f"Supabase auth {action} failed: {e.message}")
            raise StoreError(f"Identity provider failed to {action}: {e.message}") from e
        except AuthError as e:
            logger.error(f"Supabase auth {action} failed: {str(e)}")
            raise StoreError(f"Identity provider failed to {action}: {str(e)}") from e
        except httpx.TimeoutException as e:
            logger.error(f"Supabase auth {action} timed out")
            raise StoreError(f"Identity provider timed out trying to {action}") from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase auth {action} failed: {str(e)}")
            raise StoreError(f"Identity provider failed to {action}: {str(e)}") from e

    def _admin(self):
        if self.admin_client is None:
            raise StoreError("Identity admin operations need a service role client")
        return self.admin_client.auth.admin

    def get_current_session(self):
        if self.access_token:
            user_res = self._call("validate token", self.client.auth.get_user, self.access_token)
            user = user_res.user if user_res else None
        else:
            session = self._call("read session", self.client.auth.get_session)
            user = session.user if session else None

        if not user:
            return None
        return Session(user_id=user.id, email=user.email)

    def sign_out(self):
        if self.access_token and self.admin_client is not None:
            # Revokes the caller's refresh tokens, not just a local session
            self._call("sign out", self._admin().sign_out, self.access_token)
        else:
            self._call("sign out", self.client.auth.sign_out)

    def invite_by_email(self, email, metadata, redirect_to=None):
        options = {"data": metadata}
        if redirect_to:
            options["redirect_to"] = redirect_to
        res = self._call("invite user", self._admin().invite_user_by_email, email, options)
        logger.info(f"Invite sent to {email} (user {res.user.id})")
        return InviteOutcome(user_id=res.user.id, email=email)

    def create_account(self, email, password, metadata):
        res = self._call("create user", self._admin().create_user, {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": metadata,
        })
        logger.info(f"Created account for {email} (user {res.user.id})")
        return InviteOutcome(user_id=res.user.id, email=email)

    def send_password_reset(self, email, redirect_to=None):
        # GoTrue emails the recovery link
        options = {"redirect_to": redirect_to} if redirect_to else {}
        self._call("send password reset", self.client.auth.reset_password_for_email, email, options)
        logger.info(f"Password setup email sent to {email}")

    def delete_account(self, user_id):
        self._call("delete user", self._admin().delete_user, user_id, ignore_codes=(USER_NOT_FOUND,))
        logger.info(f"Deleted auth account {user_id}")
