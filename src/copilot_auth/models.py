"""Canonical Pydantic models shared across all copilot-auth modules.

The models fall into three groups:

**Credential models** -- the stored authentication state of the Copilot
provider, a tagged union discriminated on ``type``:
    :class:`OAuthCredential`, :class:`PATCredential` and the
    :data:`Credential` alias, plus :class:`CredentialKind`.

**Wire models** -- payloads exchanged with the GitHub authorization server:
    :class:`DeviceCodeResponse`, :class:`TokenResponse`, and the
    orchestrator's :class:`TokenResult`.

**Configuration models** -- the router's ``config.json`` and the
environment-driven settings:
    :class:`ProviderConfig`, :class:`RouterConfig`, :class:`AuthSettings`.

Configuration models use ``extra="allow"`` so that keys owned by the router
(transformers, other providers, logging options) survive a load/save cycle.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


# --- Credentials ---


class CredentialKind(str, enum.Enum):
    """How the stored credential was obtained."""

    OAUTH = "oauth"
    PAT = "pat"


class OAuthCredential(BaseModel):
    """Credential minted by the device authorization flow.

    ``expires_at`` is an absolute timestamp in milliseconds since the epoch,
    matching what the router has always written to ``config.json``.

    Example::

        cred = OAuthCredential.from_token_response(token, client_id="Iv1.abc", now_ms=now)
        assert cred.kind is CredentialKind.OAUTH
    """

    type: Literal["oauth"] = "oauth"
    client_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = Field(
        default=None, description="Access token expiry, ms since epoch"
    )
    token_type: Optional[str] = None

    @property
    def kind(self) -> CredentialKind:
        return CredentialKind.OAUTH

    @classmethod
    def from_token_response(
        cls, token: TokenResponse, client_id: Optional[str], now_ms: int
    ) -> OAuthCredential:
        """Build a fresh credential from a device-grant token response."""
        return cls(
            client_id=client_id,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=_expiry(token, now_ms),
            token_type=token.token_type,
        )

    def with_refreshed(self, token: TokenResponse, now_ms: int) -> OAuthCredential:
        """Return a copy carrying the tokens from a refresh-grant response.

        The previous refresh token is kept when the server does not rotate it.
        """
        return self.model_copy(
            update={
                "access_token": token.access_token,
                "refresh_token": token.refresh_token or self.refresh_token,
                "expires_at": _expiry(token, now_ms),
                "token_type": token.token_type,
            }
        )


class PATCredential(BaseModel):
    """A Personal Access Token pasted by the user. Never expires, never refreshed."""

    type: Literal["pat"] = "pat"
    access_token: Optional[str] = None

    @property
    def kind(self) -> CredentialKind:
        return CredentialKind.PAT


Credential = Annotated[
    Union[OAuthCredential, PATCredential], Field(discriminator="type")
]
"""Stored Copilot credential: either :class:`OAuthCredential` or :class:`PATCredential`."""

_credential_adapter: TypeAdapter[Any] = TypeAdapter(Credential)


def parse_credential(data: dict[str, Any]) -> Union[OAuthCredential, PATCredential]:
    """Validate a raw ``auth`` mapping into a :data:`Credential`.

    Entries written before the ``type`` tag existed are read as OAuth.

    Raises:
        pydantic.ValidationError: If the mapping does not describe a credential.
    """
    payload = dict(data)
    payload.setdefault("type", CredentialKind.OAUTH.value)
    return _credential_adapter.validate_python(payload)


def _expiry(token: TokenResponse, now_ms: int) -> Optional[int]:
    if token.expires_in is None:
        return None
    return now_ms + token.expires_in * 1000


# --- Wire models ---


class DeviceCodeResponse(BaseModel):
    """Reply from the device authorization endpoint (:rfc:`8628` section 3.2)."""

    model_config = ConfigDict(populate_by_name=True)

    device_code: str
    user_code: str
    verification_uri: str = Field(
        default="",
        validation_alias=AliasChoices("verification_uri", "verification_url"),
    )
    expires_in: int = 900
    interval: int = 5


class TokenResponse(BaseModel):
    """Successful reply from the token endpoint, for either grant."""

    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: str = ""


class TokenResult(BaseModel):
    """Outcome of :meth:`~copilot_auth.auth.orchestrator.AuthOrchestrator.get_valid_access_token`.

    ``updated`` is set only when a refresh happened; the caller must persist
    it before the next process restart.
    """

    token: str
    updated: Optional[OAuthCredential] = None

    @property
    def changed(self) -> bool:
        return self.updated is not None


# --- Router config ---


class ProviderConfig(BaseModel):
    """One entry of the router's ``Providers`` list.

    ``auth`` is kept as a raw mapping here and only validated into a
    :data:`Credential` by :class:`~copilot_auth.config.ConfigStore`.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    models: list[str] = Field(default_factory=list)
    auth: Optional[dict[str, Any]] = None
    transformer: Optional[dict[str, Any]] = None


class RouterConfig(BaseModel):
    """The router's ``config.json``.

    Only ``Providers`` and ``Router`` are modelled; every other top-level key
    is preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    providers: list[ProviderConfig] = Field(default_factory=list, alias="Providers")
    router: Optional[dict[str, Any]] = Field(default=None, alias="Router")


class AuthSettings(BaseModel):
    """Environment-driven settings for the login command.

    See :func:`copilot_auth.config.resolve_settings` for the variable names.
    """

    client_id: Optional[str] = None
    pat: Optional[str] = None
    non_interactive: bool = False
    default_model: Optional[str] = None
