"""
Congregation Hub - Church Management API.

People, districts, ministries, visitor pipeline, paid event registration and
bulk messaging for a single congregation, backed by Supabase.
"""

from .__version__ import __version__, __version_info__, get_build_info, get_version

__all__ = ["__version__", "__version_info__", "get_version", "get_build_info"]

# Package metadata
__title__ = "congregation-hub"
__description__ = "Church management API: people, districts, visitor pipeline, events and broadcast messaging"
__license__ = "MIT"
