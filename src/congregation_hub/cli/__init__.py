"""
Command-line interface module for Congregation Hub.
"""

from .main import main

__all__ = ["main"]
