"""Per-request identity produced after a bearer token is verified."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class IdentityContext:
    """
    Small, serializable context for use by the rest of the application.

    Built fresh for each verified request and attached to ``request.state.auth``.
    """

    token: str
    """The raw access token. Never logged, never included in ``to_dict()``."""

    issuer: str
    subject: str
    client_id: str
    scopes: tuple[str, ...] = ()

    audience: str | tuple[str, ...] | None = None
    """``aud`` claim: a single string or a tuple when the token lists several."""

    expires_at: int | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    def has_audience(self, audience: str) -> bool:
        if self.audience is None:
            return False
        if isinstance(self.audience, str):
            return self.audience == audience
        return audience in self.audience

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict (without the raw token)."""
        return {
            "issuer": self.issuer,
            "subject": self.subject,
            "client_id": self.client_id,
            "scopes": list(self.scopes),
            "audience": list(self.audience) if isinstance(self.audience, tuple) else self.audience,
            "expires_at": self.expires_at,
        }
