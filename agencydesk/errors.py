# Rev 0.3.0
# agencydesk/errors.py
from __future__ import annotations

from typing import Any, Optional


class AgencyDeskError(Exception):
    """Base class for errors raised by agencydesk."""


class BackendError(AgencyDeskError):
    """A backend request was rejected or could not be delivered."""

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class BackendNotConfiguredError(AgencyDeskError):
    """No backend URL/key available; the workspace cannot start."""


class LLMNotConfiguredError(AgencyDeskError):
    """Raised when an LLM client is enabled but missing configuration."""
