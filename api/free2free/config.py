import os

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/free2free")
AUTO_MIGRATE = os.getenv("AUTO_MIGRATE", "false").lower() == "true"

JWT_SECRET = os.getenv("JWT_SECRET", "")
MIN_JWT_SECRET_BYTES = 32
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "15"))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "7"))

SESSION_KEY = os.getenv("SESSION_KEY", "")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "free2free-session")
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(86400 * 7)))
SECURE_COOKIE = os.getenv("SECURE_COOKIE", "false").lower() == "true"

REVIEW_WINDOW_HOURS = int(os.getenv("REVIEW_WINDOW_HOURS", "4"))
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"

OAUTH_PROVIDERS = ("facebook", "instagram")
FACEBOOK_CLIENT_ID = os.getenv("FACEBOOK_CLIENT_ID", "")
FACEBOOK_CLIENT_SECRET = os.getenv("FACEBOOK_CLIENT_SECRET", "")
INSTAGRAM_CLIENT_ID = os.getenv("INSTAGRAM_CLIENT_ID", "")
INSTAGRAM_CLIENT_SECRET = os.getenv("INSTAGRAM_CLIENT_SECRET", "")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

RL_MATCH_JOIN_LIMIT = int(os.getenv("RL_MATCH_JOIN_LIMIT", "60"))
RL_REVIEW_CREATE_LIMIT = int(os.getenv("RL_REVIEW_CREATE_LIMIT", "60"))
RL_REVIEW_REACTION_LIMIT = int(os.getenv("RL_REVIEW_REACTION_LIMIT", "120"))
RL_AUTH_REFRESH_LIMIT = int(os.getenv("RL_AUTH_REFRESH_LIMIT", "120"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
