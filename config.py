# config.py
import os
from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL") or "sqlite:///./morpho_yield.db"

# --- UPSTREAM APIS ---
MORPHO_GRAPHQL_URL = os.getenv("MORPHO_GRAPHQL_URL", "https://api.morpho.org/graphql")
MERKL_API_URL = os.getenv("MERKL_API_URL", "https://api.merkl.xyz/v4")
MORPHO_REWARDS_API_URL = os.getenv("MORPHO_REWARDS_API_URL", "https://rewards.morpho.org/v1")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 20))
VAULT_CACHE_SECONDS = int(os.getenv("VAULT_CACHE_SECONDS", 60))

# --- PUSH ---
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
VAPID_SUBJECT = os.getenv("VAPID_SUBJECT", "mailto:admin@morpho-yield-monitor.com")

# --- EMAIL ---
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Morpho Yield Monitor <onboarding@resend.dev>")
APP_URL = os.getenv("APP_URL", "https://morpho-yield-portal.vercel.app")

# --- ADMIN / CRON ---
ADMIN_SECRET = os.getenv("ADMIN_SECRET")
CRON_SECRET = os.getenv("CRON_SECRET")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
DAILY_NOTIFICATION_HOUR = int(os.getenv("DAILY_NOTIFICATION_HOUR", 9))
NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", 5))
NOTIFICATION_BATCH_DELAY_SECONDS = float(os.getenv("NOTIFICATION_BATCH_DELAY_SECONDS", 1))
YIELD_HISTORY_RETENTION_DAYS = int(os.getenv("YIELD_HISTORY_RETENTION_DAYS", 90))
