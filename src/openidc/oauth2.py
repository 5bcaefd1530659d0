"""OAuth2 authorization-code configuration and token exchange.

This module provides:

- :class:`Endpoint` / :class:`OAuth2Config` -- the immutable client-side
  view of an OAuth2 provider, able to build authorization URLs
  (:rfc:`6749#section-4.1.1`).
- :class:`TokenExchanger` -- the capability that trades an authorization
  code for tokens, and :class:`HTTPTokenExchanger`, its :mod:`httpx`
  implementation (:rfc:`6749#section-4.1.3`).

The exchanger reports every failure as
:class:`~openidc.exceptions.ExchangeError`; it does not look at the
``id_token`` member, which is the concern of
:class:`~openidc.client.Client`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qs, quote_plus, urlencode

import httpx
from pydantic import ValidationError

from openidc.exceptions import ExchangeError
from openidc.models import ClientConfig, ProviderMetadata, TokenResponse

logger = logging.getLogger(__name__)

AUTH_METHOD_BASIC = "client_secret_basic"
AUTH_METHOD_POST = "client_secret_post"


@dataclass(frozen=True)
class Endpoint:
    """Authorization and token endpoint URLs of a provider."""

    auth_url: str
    token_url: str


@dataclass(frozen=True)
class OAuth2Config:
    """Client registration plus provider endpoints.

    Built once by :meth:`from_client_config` and never modified.
    """

    client_id: str
    endpoint: Endpoint
    client_secret: Optional[str] = field(default=None, repr=False)
    redirect_url: str = ""
    scopes: tuple[str, ...] = ()
    auth_method: str = AUTH_METHOD_BASIC

    @classmethod
    def from_client_config(cls, config: ClientConfig, metadata: ProviderMetadata) -> OAuth2Config:
        return cls(
            client_id=config.client_id,
            client_secret=config.client_secret,
            redirect_url=config.redirect_url,
            endpoint=Endpoint(
                auth_url=metadata.authorization_endpoint,
                token_url=metadata.token_endpoint,
            ),
            scopes=tuple(config.scopes),
            auth_method=config.token_endpoint_auth_method,
        )

    def auth_code_url(self, state: str, **params: str) -> str:
        """Build the URL that starts the authorization code flow.

        Args:
            state: Opaque anti-forgery value echoed back in the redirect.
                Omitted from the URL when empty.
            **params: Additional query parameters such as ``nonce`` or
                ``prompt``.

        Returns:
            The authorization endpoint URL with the request encoded in its
            query string. Query parameters already present on the endpoint
            are kept.
        """
        query: dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
        }
        if self.redirect_url:
            query["redirect_uri"] = self.redirect_url
        if self.scopes:
            query["scope"] = " ".join(self.scopes)
        if state:
            query["state"] = state
        query.update({k: v for k, v in params.items() if v is not None})

        separator = "&" if "?" in self.endpoint.auth_url else "?"
        return f"{self.endpoint.auth_url}{separator}{urlencode(query)}"


class TokenExchanger(ABC):
    """Capability that trades an authorization code for a token response."""

    @abstractmethod
    def exchange(
        self,
        config: OAuth2Config,
        code: str,
        *,
        redirect_uri: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TokenResponse:
        """Exchange *code* at ``config.endpoint.token_url``.

        Args:
            config: Client registration and endpoints.
            code: The authorization code.
            redirect_uri: Redirect URI to send instead of
                ``config.redirect_url``.
            timeout: Timeout in seconds for this request only.

        Raises:
            ExchangeError: On transport failures or provider rejections.
        """
        ...


class HTTPTokenExchanger(TokenExchanger):
    """POST the ``authorization_code`` grant with :mod:`httpx`.

    Client authentication follows ``config.auth_method``: HTTP Basic with
    form-encoded credentials for ``client_secret_basic``, body parameters
    for ``client_secret_post``. Public clients (no secret) send only
    ``client_id`` in the body.
    """

    def __init__(self, default_timeout: float = 30.0) -> None:
        self._default_timeout = default_timeout

    def exchange(
        self,
        config: OAuth2Config,
        code: str,
        *,
        redirect_uri: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TokenResponse:
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
        }
        redirect = redirect_uri or config.redirect_url
        if redirect:
            data["redirect_uri"] = redirect

        auth: Optional[httpx.BasicAuth] = None
        if config.client_secret and config.auth_method == AUTH_METHOD_BASIC:
            auth = httpx.BasicAuth(
                quote_plus(config.client_id), quote_plus(config.client_secret)
            )
        else:
            data["client_id"] = config.client_id
            if config.client_secret:
                data["client_secret"] = config.client_secret

        logger.debug(
            "Exchanging authorization code at %s (redirect_uri=%s)",
            config.endpoint.token_url,
            redirect,
        )
        try:
            response = httpx.post(
                config.endpoint.token_url,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self._default_timeout,
            )
        except httpx.HTTPError as exc:
            raise ExchangeError(f"Token exchange failed: {exc}") from exc

        if response.status_code >= 400:
            raise _error_from_response(response)

        payload = _parse_token_body(response)
        if "access_token" not in payload:
            raise ExchangeError("Token response missing 'access_token' field")
        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise ExchangeError(f"Invalid token response: {exc}") from exc


def _parse_token_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a token endpoint body, JSON or form-encoded."""
    content_type = response.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "text/plain" in content_type:
        return {k: v[0] for k, v in parse_qs(response.text).items()}
    try:
        payload = response.json()
    except ValueError as exc:
        raise ExchangeError(f"Token response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExchangeError("Token response is not a JSON object")
    return payload


def _error_from_response(response: httpx.Response) -> ExchangeError:
    """Turn a 4xx/5xx token endpoint reply into an :class:`ExchangeError`."""
    error: Optional[str] = None
    description: Optional[str] = None
    try:
        body = _parse_token_body(response)
    except ExchangeError:
        body = {}
    if isinstance(body.get("error"), str):
        error = body["error"]
    if isinstance(body.get("error_description"), str):
        description = body["error_description"]

    if error:
        detail = error + (f": {description}" if description else "")
    else:
        detail = response.text
    return ExchangeError(
        f"Token exchange failed with status {response.status_code}: {detail}",
        error=error,
        error_description=description,
        status_code=response.status_code,
    )
