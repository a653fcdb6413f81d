import os

from dotenv import load_dotenv

from .core.logger import get_logger

logger = get_logger(__name__)

load_dotenv()

# --- Supabase Configuration ---
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# --- Stripe Configuration ---
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# --- Google Maps Places ---
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY")
PLACES_COUNTRY = os.getenv("PLACES_COUNTRY", "us")

# --- Church Defaults ---
DEFAULT_CHURCH_ID = os.getenv("DEFAULT_CHURCH_ID", "default_church")

# --- Broadcast Defaults ---
# Gmail allows roughly 100 sends/day on personal accounts and 500 on Workspace,
# so broadcasts go out 10 at a time with a pause between batches.
BROADCAST_BATCH_SIZE = int(os.getenv("BROADCAST_BATCH_SIZE", "10"))
BROADCAST_BATCH_DELAY_MS = int(os.getenv("BROADCAST_BATCH_DELAY_MS", "2000"))
BROADCAST_HISTORY_LIMIT = 50

# --- API Server ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]


def validate_config():
    """Validates that all necessary environment variables are loaded."""
    if not all([SUPABASE_URL, SUPABASE_KEY]):
        logger.warning("Warning: SUPABASE_URL and/or SUPABASE_KEY are not set.")
        logger.warning("Please check your .env file or environment configuration.")
        return False

    if not STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set - paid event registration is disabled.")
    if not GOOGLE_MAPS_API_KEY:
        logger.warning("GOOGLE_MAPS_API_KEY not set - address autocomplete is disabled.")

    logger.info("All configurations loaded successfully.")
    return True


if __name__ == "__main__":
    validate_config()
