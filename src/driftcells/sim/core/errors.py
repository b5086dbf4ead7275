from __future__ import annotations


class ConfigurationError(ValueError):
    """Rejected simulation configuration; raised at construction or load time only."""


class DegenerateInputError(ValueError):
    """The current site set cannot produce a valid bounded tessellation."""

    def __init__(self, message: str, site_count: int = 0):
        super().__init__(message)
        self.site_count = site_count
