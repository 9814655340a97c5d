"""
Core module for application configuration and session logic.
"""
from .config import settings

__all__ = ["settings"]
