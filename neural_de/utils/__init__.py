"""Runtime helpers."""

from .runtime import seed_all

__all__ = ["seed_all"]
