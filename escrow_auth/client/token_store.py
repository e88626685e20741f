"""
Client-side token pair slot.

Holds at most one token pair. Replacing swaps both tokens in a single
assignment so readers never see a new access token next to an old
refresh token.
"""

from typing import Optional

from escrow_auth.services.tokens import TokenPair


class TokenStore:
    def __init__(self, pair: Optional[TokenPair] = None):
        self._pair = pair

    @property
    def current(self) -> Optional[TokenPair]:
        return self._pair

    @property
    def access_token(self) -> Optional[str]:
        return self._pair.access_token if self._pair else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._pair.refresh_token if self._pair else None

    def replace(self, pair: TokenPair) -> None:
        self._pair = pair

    def clear(self) -> None:
        self._pair = None
