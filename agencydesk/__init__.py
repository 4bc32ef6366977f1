# Rev 0.3.0
"""agencydesk: client-side state core for the agency workspace."""

__version__ = "0.3.0"
