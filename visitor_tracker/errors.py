from __future__ import annotations


class VisitorTrackerError(Exception):
    """Base class for errors mapped to HTTP responses in main.py."""


class ValidationError(VisitorTrackerError):
    """Required input missing or malformed. No side effect was applied."""


class Unauthorized(VisitorTrackerError):
    """Admin secret mismatch."""


class AdminNotConfigured(VisitorTrackerError):
    """No admin secret configured, so admin-only operations are disabled."""


class StoreError(VisitorTrackerError):
    """The backing store failed or could not be reached."""
