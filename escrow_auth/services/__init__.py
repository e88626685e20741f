"""
Services package for business logic.
"""

from escrow_auth.services.session import SessionRecord, SessionRegistry
from escrow_auth.services.tokens import TokenIssuer, TokenPair

__all__ = [
    "SessionRecord",
    "SessionRegistry",
    "TokenIssuer",
    "TokenPair",
]
