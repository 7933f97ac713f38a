import os
from dotenv import load_dotenv

from directchat.utils.env_helper import env_bool, env_none_or_str, env_list

load_dotenv()


SUPABASE_URL = env_none_or_str("PUBLIC_SUPABASE_URL")
SUPABASE_KEY = env_none_or_str("SECRET_API_KEY")
JWT_SIGN_KEY = env_none_or_str("SUPABASE_JWT_SECRET")

# "supabase" talks to the hosted project, "memory" keeps everything in-process
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase").lower()
ATTACHMENTS_BUCKET = os.getenv("ATTACHMENTS_BUCKET", "attachments")

SERIALIZE_CONVERSATION_CREATION = env_bool(
    "SERIALIZE_CONVERSATION_CREATION", default=True
)
REQUIRE_FRIENDSHIP_FOR_CHAT = env_bool("REQUIRE_FRIENDSHIP_FOR_CHAT", default=True)

# live delivery across workers needs the realtime feed
REALTIME_ENABLED = env_bool("REALTIME_ENABLED", default=True)
WEB_CONCURRENCY = int(os.getenv("WEB_CONCURRENCY", "1"))

CORS_ORIGINS = env_list(
    "CORS_ORIGINS", default=["http://localhost:5173", "http://localhost:8080"]
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
