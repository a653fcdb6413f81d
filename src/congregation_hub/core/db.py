from supabase import Client, create_client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import config
from .logger import get_logger

logger = get_logger(__name__)

supabase_client: Client = None

# Define retryable exceptions for Supabase connection
RETRYABLE_SUPABASE_EXCEPTIONS = (Exception,)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(RETRYABLE_SUPABASE_EXCEPTIONS),
    reraise=False,  # RetryError after the last attempt, handled by get_supabase_client
)
def _create_supabase_client_with_retry(url, key):
    """Internal helper to create Supabase client with retry logic."""
    return create_client(url, key)


def get_supabase_client() -> Client:
    """Initializes and returns the shared Supabase client."""
    global supabase_client
    if supabase_client is None:
        if config.SUPABASE_URL and config.SUPABASE_KEY:
            try:
                supabase_client = _create_supabase_client_with_retry(config.SUPABASE_URL, config.SUPABASE_KEY)
                if supabase_client:
                    logger.info("Supabase client initialized successfully.")
                else:
                    logger.error("Failed to initialize Supabase client after multiple retries.")
            except Exception as e:
                logger.error(f"Error initializing Supabase client: {e}")
                supabase_client = None
        else:
            logger.warning("Supabase URL and/or Key NOT loaded.")
    return supabase_client


def reset_supabase_client():
    """Drop the cached client (used by tests and after credential rotation)."""
    global supabase_client
    supabase_client = None
