from fastapi import Header, HTTPException
from app import config
from app.schemas.auth import AuthContext
from app.services.errors import StoreError
from app.services.identity import SupabaseIdentityProvider
from app.services.profiles import ensure_profile
from app.services.store import SupabaseDataStore
from app.services.supabase import get_client, get_admin_client
import time
import logging

logger = logging.getLogger(__name__)

def user_supabase_client(authorization: str = Header(...)):
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid token format")

    token = authorization.split(" ")[1]

    try:
        supabase = get_client()
        # Invites need the service role; everything else runs as the caller
        admin_client = get_admin_client() if config.SUPABASE_SERVICE_ROLE_KEY else None
    except RuntimeError:
        raise HTTPException(status_code=500, detail="Server configuration error")

    identity = SupabaseIdentityProvider(supabase, access_token=token, admin_client=admin_client)

    try:
        start_time = time.time()
        logger.info("Validating token with Supabase")
        session = identity.get_current_session()
        end_time = time.time()
        logger.info(f"Token validation completed in {end_time - start_time:.2f} seconds")
    except StoreError as e:
        logger.error(f"Supabase token validation error: {e.message}")
        if "timed out" in e.message.lower():
            raise HTTPException(
                status_code=504,
                detail="Connection to authentication service timed out. Please try again later."
            )
        raise HTTPException(status_code=401, detail=f"Authentication error: {e.message}")

    if not session:
        logger.warning("User not found after successful token validation")
        raise HTTPException(status_code=401, detail="User not found")

    # Run table queries under the caller's row level security policies
    supabase.postgrest.auth(token)
    store = SupabaseDataStore(supabase)

    # RLS won't let a user grant themselves admin, so provisioning uses the service role when configured
    provisioning_store = SupabaseDataStore(admin_client) if admin_client is not None else store
    profile = ensure_profile(provisioning_store, session.user_id, session.email, config.ADMIN_EMAIL)

    logger.info(f"Successfully authenticated user: {session.user_id} ({profile.role.value})")
    return {
        "supabase": supabase,
        "store": store,
        "identity": identity,
        "auth": AuthContext(user_id=session.user_id, email=session.email, role=profile.role),
        "profile": profile,
    }
