import os
from dotenv import load_dotenv

load_dotenv()

# Supabase project
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# Network timeout for PostgREST calls; auth calls keep the auth client default
SUPABASE_TIMEOUT_SECONDS = float(os.getenv("SUPABASE_TIMEOUT_SECONDS", "10"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Accounts signing in with this address are provisioned as admins
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")

# "invite" sends a Supabase invite, "create" makes the account and mails a recovery link
TUTOR_INVITE_MODE = os.getenv("TUTOR_INVITE_MODE", "invite")
INVITE_REDIRECT_URL = os.getenv("INVITE_REDIRECT_URL")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
