"""Email Gateway - authenticated Gmail access over HTTP.

This package signs users in with Google, keeps their sessions and exposes a
small read-only API over their Gmail mailbox, guarded by role-based
authorization and per-IP rate limits.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from email_gateway.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
