"""Canonical Pydantic models shared across all openidc modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- supplied by the caller or loaded from a YAML/JSON
config file by :mod:`openidc.config`:
    :class:`ClientConfig`.

**Protocol models** -- produced while talking to the provider:
    :class:`ProviderMetadata` (discovery document), :class:`TokenResponse`
    (token endpoint reply) and :class:`IDToken` (verified identity token).

All models use Pydantic v2. Models that mirror provider JSON use
``extra="allow"`` so that members this package does not know about are
preserved in ``model_extra``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"
"""Out-of-band redirect: the provider displays the code instead of redirecting."""

SCOPE_OPENID = "openid"

DEFAULT_SCOPES = (SCOPE_OPENID,)


# --- Client Config ---


class ClientConfig(BaseModel):
    """Relying-party configuration for one OpenID Connect client.

    Immutable once constructed. ``redirect_url`` and ``scopes`` fill in
    their defaults when omitted *or* given empty, so a config loaded from a
    file with ``redirect_url: ""`` behaves like one without the key.
    Emptiness of ``issuer`` and ``client_id`` is not rejected here; it is
    reported by :func:`validate_client_config` so that the client
    constructor can raise :class:`~openidc.exceptions.ConfigError`.

    Example::

        ClientConfig(
            issuer="https://accounts.example.com",
            client_id="cli-app",
            scopes=["openid", "email"],
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    issuer: str = Field(default="", description="Issuer URL of the OpenID provider")
    client_id: str = Field(default="", description="OAuth2 client identifier")
    client_secret: Optional[str] = Field(
        default=None, repr=False, description="Client secret; omit for public clients"
    )
    redirect_url: str = Field(
        default=OOB_REDIRECT_URI,
        description="Registered redirect URI; defaults to the out-of-band sentinel",
    )
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    token_endpoint_auth_method: Literal["client_secret_basic", "client_secret_post"] = Field(
        default="client_secret_basic",
        description="How the client secret is presented to the token endpoint",
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    leeway: int = Field(
        default=0, ge=0, description="Clock skew in seconds tolerated for exp/iat/nbf"
    )

    @field_validator("issuer", "client_id", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("redirect_url", mode="before")
    @classmethod
    def _default_redirect(cls, value: Any) -> Any:
        if value is None or value == "":
            return OOB_REDIRECT_URI
        return value

    @field_validator("scopes", mode="before")
    @classmethod
    def _default_scopes(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.replace(",", " ").split()
        if not value:
            return list(DEFAULT_SCOPES)
        return value

    @property
    def is_out_of_band(self) -> bool:
        return self.redirect_url == OOB_REDIRECT_URI


def validate_client_config(config: ClientConfig) -> list[str]:
    """Check the fields a client cannot start without.

    Args:
        config: The configuration to validate.

    Returns:
        A list of human-readable error strings. Empty if valid.
    """
    errors: list[str] = []
    if not config.issuer:
        errors.append("issuer is missing")
    if not config.client_id:
        errors.append("client_id is missing")
    return errors


# --- Protocol Models ---


class ProviderMetadata(BaseModel):
    """OpenID Provider metadata from ``/.well-known/openid-configuration``.

    Only the members this package acts on are declared; everything else
    the provider publishes is kept in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: Optional[str] = None
    scopes_supported: list[str] = Field(default_factory=list)
    response_types_supported: list[str] = Field(default_factory=list)
    id_token_signing_alg_values_supported: list[str] = Field(
        default_factory=lambda: ["RS256"]
    )
    token_endpoint_auth_methods_supported: list[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """Successful reply of the token endpoint (:rfc:`6749#section-5.1`).

    Members outside the core OAuth2 set, ``id_token`` among them, are
    extension fields and are read with :meth:`extra`.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(repr=False)
    token_type: str = "Bearer"
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_in: Optional[int] = None
    scope: Optional[str] = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _coerce_expires_in(cls, value: Any) -> Any:
        # Some providers send the lifetime as a string.
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return value

    def extra(self, key: str) -> Any:
        """Return the extension field *key*, or ``None`` when absent."""
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key)


class IDToken(BaseModel):
    """An ID token whose signature and standard claims have been verified.

    ``claims`` holds the complete decoded payload; the remaining fields are
    typed views over the standard claims.
    """

    model_config = ConfigDict(frozen=True)

    issuer: str
    subject: str
    audience: list[str]
    expiry: datetime
    issued_at: datetime
    nonce: Optional[str] = None
    claims: dict[str, Any] = Field(default_factory=dict)
    raw: str = Field(default="", repr=False)

    @classmethod
    def from_claims(cls, raw: str, claims: dict[str, Any]) -> IDToken:
        """Build an :class:`IDToken` from a decoded and verified payload."""
        audience = claims.get("aud", [])
        if isinstance(audience, str):
            audience = [audience]
        return cls(
            issuer=claims["iss"],
            subject=claims["sub"],
            audience=list(audience),
            expiry=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            nonce=claims.get("nonce"),
            claims=dict(claims),
            raw=raw,
        )
