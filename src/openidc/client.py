"""OpenID Connect relying-party client.

:class:`Client` ties the three capabilities together:

1. :class:`~openidc.discovery.ProviderDiscovery` -- run once, in the
   constructor, to learn the provider's endpoints and signing algorithms.
2. :class:`~openidc.oauth2.TokenExchanger` -- trades an authorization code
   for tokens.
3. :class:`~openidc.verifier.TokenVerifier` -- checks the ID token's
   signature, issuer, audience and expiry.

A ``Client`` only exists once discovery has succeeded, so every method can
rely on the stored metadata. Nothing is mutated after construction and the
methods are safe to call from several threads.

Example::

    client = init("https://accounts.example.com", "cli-app")
    url = client.auth_code_url(state)
    ...
    token = client.code_to_id_token(code)
    print(token.subject, token.claims["email"])
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from pydantic import ValidationError

from openidc.discovery import HTTPProviderDiscovery, ProviderDiscovery
from openidc.exceptions import ConfigError, MissingIDTokenError
from openidc.models import (
    ClientConfig,
    IDToken,
    ProviderMetadata,
    TokenResponse,
    validate_client_config,
)
from openidc.oauth2 import HTTPTokenExchanger, OAuth2Config, TokenExchanger
from openidc.redirect import split_code
from openidc.verifier import JWKSTokenVerifier, TokenVerifier

logger = logging.getLogger(__name__)

VerifierFactory = Callable[[ClientConfig, ProviderMetadata], TokenVerifier]


def _default_verifier(config: ClientConfig, metadata: ProviderMetadata) -> TokenVerifier:
    return JWKSTokenVerifier(
        issuer=metadata.issuer,
        client_id=config.client_id,
        jwks_uri=metadata.jwks_uri,
        algorithms=metadata.id_token_signing_alg_values_supported,
        leeway=config.leeway,
        timeout=config.timeout,
    )


class Client:
    """An initialised relying party bound to one provider and one client ID.

    Prefer :meth:`discover` (or :func:`init`) over calling the constructor
    directly; the constructor expects metadata that has already been
    fetched.

    Args:
        config: Validated client configuration.
        metadata: The provider's discovery document.
        exchanger: Token exchange capability. Defaults to
            :class:`~openidc.oauth2.HTTPTokenExchanger`.
        verifier: ID token verifier. Defaults to a
            :class:`~openidc.verifier.JWKSTokenVerifier` for
            ``metadata.jwks_uri``.
    """

    def __init__(
        self,
        config: ClientConfig,
        metadata: ProviderMetadata,
        exchanger: Optional[TokenExchanger] = None,
        verifier: Optional[TokenVerifier] = None,
    ) -> None:
        errors = validate_client_config(config)
        if errors:
            raise ConfigError("; ".join(errors))
        self._config = config
        self._metadata = metadata
        self._oauth2 = OAuth2Config.from_client_config(config, metadata)
        self._exchanger = exchanger or HTTPTokenExchanger(default_timeout=config.timeout)
        self._verifier = verifier or _default_verifier(config, metadata)

    @classmethod
    def discover(
        cls,
        config: ClientConfig,
        *,
        timeout: Optional[float] = None,
        discovery: Optional[ProviderDiscovery] = None,
        exchanger: Optional[TokenExchanger] = None,
        verifier_factory: Optional[VerifierFactory] = None,
    ) -> Client:
        """Validate *config*, fetch the provider metadata and build a client.

        Makes exactly one outbound request and never retries.

        Args:
            config: Client configuration.
            timeout: Timeout in seconds for the discovery request. Defaults
                to ``config.timeout``.
            discovery: Discovery capability. Defaults to
                :class:`~openidc.discovery.HTTPProviderDiscovery`.
            exchanger: Token exchange capability passed to the client.
            verifier_factory: Builds the verifier from the config and the
                discovered metadata.

        Returns:
            A ready-to-use :class:`Client`.

        Raises:
            ConfigError: If ``issuer`` or ``client_id`` is empty.
            DiscoveryError: If the metadata cannot be fetched or parsed.
        """
        errors = validate_client_config(config)
        if errors:
            raise ConfigError("; ".join(errors))

        discovery = discovery or HTTPProviderDiscovery(default_timeout=config.timeout)
        metadata = discovery.discover(
            config.issuer, timeout=timeout if timeout is not None else config.timeout
        )
        factory = verifier_factory or _default_verifier
        return cls(
            config,
            metadata,
            exchanger=exchanger,
            verifier=factory(config, metadata),
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def metadata(self) -> ProviderMetadata:
        return self._metadata

    @property
    def oauth2(self) -> OAuth2Config:
        return self._oauth2

    @property
    def verifier(self) -> TokenVerifier:
        return self._verifier

    def auth_code_url(self, state: str, **params: str) -> str:
        """Return the provider URL that starts the authorization code flow.

        Pure function of the configuration and *state*; no network access.

        Args:
            state: Anti-forgery value the caller checks on the redirect.
            **params: Extra query parameters (``nonce``, ``prompt``, ...).
        """
        return self._oauth2.auth_code_url(state, **params)

    def exchange(
        self,
        code: str,
        *,
        redirect_uri: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TokenResponse:
        """Exchange *code* for a token response without verifying anything.

        Raises:
            ExchangeError: On transport failures or provider rejections.
        """
        return self._exchanger.exchange(
            self._oauth2,
            code,
            redirect_uri=redirect_uri,
            timeout=timeout if timeout is not None else self._config.timeout,
        )

    def verify(self, raw_id_token: str, *, nonce: Optional[str] = None) -> IDToken:
        """Verify a raw ID token with the stored verifier."""
        return self._verifier.verify(raw_id_token, nonce=nonce)

    def code_to_id_token(
        self,
        code: str,
        *,
        timeout: Optional[float] = None,
        nonce: Optional[str] = None,
    ) -> IDToken:
        """Exchange an authorization code and return the verified ID token.

        *code* may carry a loopback redirect URI after a single space
        (``"<code> http://127.0.0.1:<port>/..."``); that URI is then sent as
        the ``redirect_uri`` of the exchange. See
        :func:`~openidc.redirect.split_code`.

        Args:
            code: The authorization code, optionally with a redirect override.
            timeout: Timeout in seconds for the token request.
            nonce: Expected ``nonce`` claim, if one was sent in the
                authorization request.

        Returns:
            The verified :class:`~openidc.models.IDToken`.

        Raises:
            ExchangeError: If the token endpoint rejects the code.
            MissingIDTokenError: If the token response has no ``id_token``.
            VerificationError: If the ID token fails validation.
        """
        actual_code, redirect_override = split_code(code)
        if redirect_override:
            logger.debug("Using redirect_uri override %s", redirect_override)

        token = self.exchange(actual_code, redirect_uri=redirect_override, timeout=timeout)

        raw_id_token = token.extra("id_token")
        if not isinstance(raw_id_token, str) or not raw_id_token:
            raise MissingIDTokenError("Token response missing 'id_token' field")

        return self.verify(raw_id_token, nonce=nonce)


def init(
    issuer: str,
    client_id: str,
    client_secret: Optional[str] = None,
    redirect_url: Optional[str] = None,
    scopes: Optional[Sequence[str]] = None,
    *,
    timeout: Optional[float] = None,
) -> Client:
    """Build a :class:`ClientConfig` from arguments and discover the provider.

    ``redirect_url`` defaults to ``urn:ietf:wg:oauth:2.0:oob`` and
    ``scopes`` to ``["openid"]`` when omitted or empty.

    Raises:
        ConfigError: If ``issuer`` or ``client_id`` is empty, or a value is invalid.
        DiscoveryError: If the provider metadata cannot be fetched or parsed.
    """
    try:
        config = ClientConfig(
            issuer=issuer,
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=redirect_url,
            scopes=list(scopes) if scopes else None,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    return Client.discover(config, timeout=timeout)
