#!/usr/bin/env python3
"""
HTTP client with connection pooling for the third-party REST APIs
(Gmail send, Google Maps Places).
"""

from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..__version__ import __version__
from .logger import get_logger

logger = get_logger(__name__)


class HTTPClientPool:
    """
    Pooled requests session.

    Only idempotent methods are retried on 429/5xx; POSTs go out exactly once.
    """

    def __init__(
        self,
        pool_connections: int = 10,
        pool_maxsize: int = 20,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        timeout: int = 20,
    ):
        """
        Initialize HTTP client with connection pooling.

        Args:
            pool_connections: Number of connection pools to cache
            pool_maxsize: Maximum number of connections to save in pool
            max_retries: Maximum number of retry attempts for GET/HEAD/OPTIONS
            backoff_factor: Backoff factor for retries
            timeout: Default request timeout in seconds
        """
        self.timeout = timeout
        self.session = requests.Session()

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )

        adapter = HTTPAdapter(pool_connections=pool_connections, pool_maxsize=pool_maxsize, max_retries=retry_strategy)

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update(
            {
                "User-Agent": f"congregation-hub/{__version__}",
                "Accept": "application/json",
            }
        )

        logger.info(f"🔗 HTTP client initialized with pool_size={pool_maxsize}, max_retries={max_retries}")

    def get(
        self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None, timeout: Optional[int] = None
    ) -> requests.Response:
        """
        GET request with connection pooling and retry logic.

        Raises:
            requests.RequestException: On request failure after retries
        """
        request_headers = self.session.headers.copy()
        if headers:
            request_headers.update(headers)

        try:
            logger.debug(f"🌐 GET request: {url}")
            response = self.session.get(url, params=params, headers=request_headers, timeout=timeout or self.timeout)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            logger.error(f"❌ GET failed: {url} - {str(e)}")
            raise

    def post(
        self,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> requests.Response:
        """
        POST request with connection pooling.

        The response is returned as-is so callers can read API error bodies.
        """
        request_headers = self.session.headers.copy()
        if headers:
            request_headers.update(headers)

        logger.debug(f"📤 POST request: {url}")
        return self.session.post(url, json=json, headers=request_headers, timeout=timeout or self.timeout)

    def close(self):
        """Close the session and cleanup resources."""
        if self.session:
            self.session.close()
            logger.debug("🔒 HTTP session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Global HTTP client instance
_http_client = None


def get_http_client() -> HTTPClientPool:
    """
    Get or create the global HTTP client instance.

    Returns:
        HTTPClientPool: Configured HTTP client with connection pooling
    """
    global _http_client

    if _http_client is None:
        _http_client = HTTPClientPool()

    return _http_client


def cleanup_http_client():
    """Clean up the global HTTP client."""
    global _http_client

    if _http_client is not None:
        _http_client.close()
        _http_client = None
        logger.debug("🧹 Global HTTP client cleaned up")
