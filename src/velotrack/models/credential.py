"""AWS credential model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator


class Credential(BaseModel):
    """AWS access key pair used to presign broker URLs.

    The secret and session token are :class:`~pydantic.SecretStr`, so
    ``repr()`` and log output show ``**********`` instead of the value.
    Values are signed byte for byte as given; nothing is stripped.

    Parameters
    ----------
    access_key_id : str
        AWS access key id.
    secret_access_key : SecretStr
        AWS secret access key.
    session_token : SecretStr or None
        STS session token for temporary credentials.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    access_key_id: str
    secret_access_key: SecretStr
    session_token: SecretStr | None = None

    @field_validator("session_token", mode="before")
    @classmethod
    def _empty_token_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def session_token_value(self) -> str | None:
        if self.session_token is None:
            return None
        return self.session_token.get_secret_value() or None
