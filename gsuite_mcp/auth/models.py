"""Pydantic model for a stored OAuth credential.

One ``CredentialRecord`` exists per authenticated identity. On disk it is a
flat JSON object whose keys follow the authorized-user layout used by
google-auth and by earlier Google Workspace tools::

    {
      "token": "ya29...",
      "refresh_token": "1//...",
      "token_uri": "https://oauth2.googleapis.com/token",
      "client_id": "....apps.googleusercontent.com",
      "client_secret": "...",
      "scopes": ["openid", "..."],
      "expiry": "2026-01-20T15:04:05Z"
    }

The identity itself is not part of the body; it is the file name.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

from google.oauth2.credentials import Credentials
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Access tokens are treated as expired this long before their stated expiry
EXPIRY_SKEW = timedelta(seconds=10)


class CredentialRecord(BaseModel):
    """A self-sufficient OAuth credential for one identity.

    The application's client id and secret are duplicated into every record
    so that a record can be refreshed without any other configuration.

    Attributes:
        identity: Email address keying the record (not serialized).
        access_token: Short-lived bearer token, empty if unknown.
        refresh_token: Long-lived token, empty if the provider withheld it.
        token_endpoint: URL used to mint new access tokens.
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        granted_scopes: Scopes granted with the token.
        expiry: Absolute UTC expiry of ``access_token``, or None if unknown.
    """

    model_config = ConfigDict(populate_by_name=True)

    identity: str = Field(..., min_length=1, exclude=True)
    access_token: str = Field(default="", alias="token")
    refresh_token: str = Field(default="")
    token_endpoint: str = Field(..., alias="token_uri", min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(default="")
    granted_scopes: list[str] = Field(default_factory=list, alias="scopes")
    expiry: datetime | None = Field(default=None)

    @field_validator("access_token", "refresh_token", "client_secret", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("granted_scopes", mode="before")
    @classmethod
    def _null_as_no_scopes(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("expiry", mode="before")
    @classmethod
    def _blank_expiry(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("expiry")
    @classmethod
    def _normalize_expiry(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        # Go's zero time.Time means "no expiry"
        if value.year <= 1:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def is_expired(self, skew: timedelta = EXPIRY_SKEW) -> bool:
        """Whether the access token must be refreshed before use.

        A missing access token counts as expired. An unknown expiry does not.
        """
        if not self.access_token:
            return True
        if self.expiry is None:
            return False
        return datetime.now(UTC) >= self.expiry - skew

    @classmethod
    def from_json(cls, identity: str, raw: str) -> CredentialRecord:
        """Parse a slot file body.

        Raises:
            ValueError: If the body is not a JSON object.
            pydantic.ValidationError: If required fields are missing or invalid.
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("credential file must contain a JSON object")
        return cls.model_validate({**data, "identity": identity})

    def to_json(self) -> str:
        """Serialize to the slot file body."""
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_credentials(
        cls,
        identity: str,
        credentials: Credentials,
        default_scopes: list[str] | None = None,
    ) -> CredentialRecord:
        """Build a record from freshly exchanged google-auth credentials."""
        scopes = list(credentials.scopes) if credentials.scopes else list(default_scopes or [])
        return cls(
            identity=identity,
            access_token=credentials.token,
            refresh_token=credentials.refresh_token or "",
            token_endpoint=credentials.token_uri,
            client_id=credentials.client_id,
            client_secret=credentials.client_secret or "",
            granted_scopes=scopes,
            expiry=credentials.expiry,
        )

    def to_credentials(self) -> Credentials:
        """Build a google-auth ``Credentials`` object acting as the token source.

        google-auth compares expiry against naive UTC, so the timezone is
        stripped here.
        """
        expiry = None
        if self.expiry is not None:
            expiry = self.expiry.astimezone(UTC).replace(tzinfo=None)

        return Credentials(  # type: ignore[no-untyped-call]
            token=self.access_token or None,
            refresh_token=self.refresh_token or None,
            token_uri=self.token_endpoint,
            client_id=self.client_id,
            client_secret=self.client_secret or None,
            scopes=self.granted_scopes or None,
            expiry=expiry,
        )

    def with_credentials(self, credentials: Credentials) -> CredentialRecord:
        """Return a copy updated with the token state of refreshed credentials."""
        return self.model_copy(
            update={
                "access_token": credentials.token,
                "refresh_token": credentials.refresh_token or self.refresh_token,
                "expiry": _aware(credentials.expiry),
            }
        )


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = ["CredentialRecord"]
