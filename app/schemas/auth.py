"""Authentication schemas."""

from typing import Any

from pydantic import BaseModel, Field

from app.schemas.users import UserProfile


class DecodedIdentity(BaseModel):
    """A verified bearer token: subject id plus its claims snapshot."""

    uid: str
    email: str | None = None
    claims: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_token(cls, decoded_token: dict[str, Any]) -> "DecodedIdentity":
        """Build from a decoded Firebase ID token."""
        return cls(
            uid=decoded_token["uid"],
            email=decoded_token.get("email"),
            claims=dict(decoded_token),
        )


class AdminContext(BaseModel):
    """Verified admin caller together with the tenant every operation reuses."""

    identity: DecodedIdentity
    business_id: str
    profile: dict[str, Any] = Field(default_factory=dict)

    @property
    def uid(self) -> str:
        """The admin's uid."""
        return self.identity.uid

    @property
    def email(self) -> str | None:
        """The admin's email, from the profile or the token."""
        return self.profile.get("email") or self.identity.email

    @property
    def is_owner(self) -> bool:
        """True when the admin founded their business."""
        return bool(self.profile.get("isOwner"))


class SessionResult(BaseModel):
    """Outcome of establishing a session after sign-in."""

    profile: UserProfile
    created: bool = False
