"""Settings domain exceptions."""

from __future__ import annotations


class InvalidSettings(Exception):
    """A settings update carried an out-of-range value."""
