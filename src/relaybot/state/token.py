"""OAuth token record model.

A token record captures one OAuth2 grant (initial or refreshed) so the
authorization client can resume a session after a restart instead of
asking the user to authorize again.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenRecord:
    """A captured OAuth2 access/refresh token grant.

    Attributes:
        access_token: Bearer token for API calls
        refresh_token: Token used to obtain a new access token
        token_type: Usually 'bearer'
        expires_in: Lifetime of the access token in seconds
        scope: Granted scope string
        raw_response: Token endpoint response body as received
    """

    access_token: str
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    raw_response: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> TokenRecord:
        """Create a TokenRecord from a ``token_history`` row mapping.

        Args:
            row: Row mapping with the token_history columns

        Returns:
            TokenRecord instance
        """
        expires_in = row["expires_in"]
        return cls(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_type=row["token_type"],
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=row["scope"],
            raw_response=row["raw_response"],
        )

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> TokenRecord:
        """Build a record from an OAuth2 token endpoint JSON payload.

        Args:
            payload: Decoded JSON body of the token response

        Returns:
            TokenRecord with the raw payload kept as JSON text

        Raises:
            ValueError: If the payload has no access_token
        """
        access_token = payload.get("access_token")
        if not access_token:
            msg = "Token response is missing 'access_token'"
            raise ValueError(msg)

        expires_in = payload.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=payload.get("scope"),
            raw_response=json.dumps(payload),
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for inserting into ``token_history``."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": self.scope,
            "raw_response": self.raw_response,
        }

    def expires_at_ms(self, issued_at_ms: int) -> int | None:
        """Expiry time in epoch milliseconds, or None if unknown."""
        if self.expires_in is None:
            return None
        return issued_at_ms + self.expires_in * 1000

    def is_expired(
        self,
        issued_at_ms: int,
        now_ms: int | None = None,
        leeway_seconds: int = 60,
    ) -> bool:
        """Check whether the access token should be refreshed.

        A token with unknown lifetime is treated as expired.

        Args:
            issued_at_ms: When the token was stored (epoch milliseconds)
            now_ms: Current time in epoch milliseconds (default: now)
            leeway_seconds: Refresh this long before the actual expiry

        Returns:
            True if the token is expired or about to expire
        """
        expires_at = self.expires_at_ms(issued_at_ms)
        if expires_at is None:
            return True
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms >= expires_at - leeway_seconds * 1000
