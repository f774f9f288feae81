"""Writers that deliver imported contacts to the platform."""

from .base import Contact, ContactWriter  # noqa: F401
from .api_client import HttpContactWriter  # noqa: F401
from .rate_limit import DelayPolicy, RateLimitedWriter, RateLimiter  # noqa: F401
from .sample import DryRunWriter  # noqa: F401

__all__ = [
    "Contact",
    "ContactWriter",
    "DelayPolicy",
    "DryRunWriter",
    "HttpContactWriter",
    "RateLimitedWriter",
    "RateLimiter",
]
