"""
Version information for Congregation Hub.

Build metadata is read from the CI environment when present.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

__version__ = "1.4.0"
__version_info__ = tuple(int(i) for i in __version__.split("."))

BUILD_INFO = {
    "version": __version__,
    "version_info": __version_info__,
    "git_commit": os.getenv("GITHUB_SHA", "unknown"),
    "git_branch": os.getenv("GITHUB_REF_NAME", "unknown"),
    "build_date": os.getenv("BUILD_DATE", datetime.now(timezone.utc).isoformat()),
    "build_number": os.getenv("GITHUB_RUN_NUMBER", "unknown"),
}


def get_version(include_build: bool = False) -> str:
    """
    Get version string.

    Args:
        include_build: Include the short commit hash as local version label

    Returns:
        Version string
    """
    if include_build and BUILD_INFO.get("git_commit") != "unknown":
        commit_short = BUILD_INFO["git_commit"][:7]
        return f"{__version__}+{commit_short}"
    return __version__


def get_version_info() -> Tuple[int, ...]:
    """Get version info tuple (major, minor, patch)."""
    return __version_info__


def get_build_info() -> Dict[str, Any]:
    """Get a copy of the build metadata."""
    return BUILD_INFO.copy()


def print_version_info(verbose: bool = False) -> None:
    """
    Print version information to stdout.

    Args:
        verbose: Include detailed build information
    """
    print(f"Congregation Hub v{__version__}")

    if verbose:
        info = get_build_info()
        print(f"Build Date: {info['build_date']}")
        print(f"Git Commit: {info['git_commit']}")
        print(f"Git Branch: {info['git_branch']}")
        print(f"Build Number: {info['build_number']}")


def _validate_version(version: str) -> bool:
    """Validate semantic version format."""
    try:
        parts = version.split(".")
        if len(parts) != 3:
            return False
        for part in parts:
            int(part)
        return True
    except ValueError:
        return False


if not _validate_version(__version__):
    raise ValueError(f"Invalid version format: {__version__}")

__all__ = [
    "__version__",
    "__version_info__",
    "BUILD_INFO",
    "get_version",
    "get_version_info",
    "get_build_info",
    "print_version_info",
]
