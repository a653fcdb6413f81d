"""
Core module for Congregation Hub.

Logging, the Supabase client, the pooled HTTP client and small record helpers.
"""

from .db import get_supabase_client
from .http_client import HTTPClientPool, get_http_client
from .logger import get_logger
from .utils import clean_record, display_name, normalize_postal_code, utc_now_iso

__all__ = [
    "get_logger",
    "get_supabase_client",
    "get_http_client",
    "HTTPClientPool",
    "clean_record",
    "display_name",
    "normalize_postal_code",
    "utc_now_iso",
]
