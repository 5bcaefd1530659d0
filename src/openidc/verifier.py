"""ID token verification backed by PyJWT.

The :class:`TokenVerifier` capability validates a compact-serialised ID
token and returns the verified :class:`~openidc.models.IDToken`.
:class:`JWKSTokenVerifier` implements it with :class:`jwt.PyJWKClient`,
which fetches the provider's JWK set lazily on first use and caches it.
No cryptography is done in this package.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import jwt
from jwt import PyJWKClient

from openidc.exceptions import VerificationError
from openidc.models import IDToken

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["iss", "sub", "aud", "exp", "iat"]

# JWK set cache lifetime in seconds.
JWKS_LIFESPAN = 300

# JWS algorithm prefix -> JWK "kty".
_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC", "HS": "oct"}


class TokenVerifier(ABC):
    """Capability that validates an ID token for one client."""

    @abstractmethod
    def verify(self, raw_token: str, *, nonce: Optional[str] = None) -> IDToken:
        """Verify *raw_token* and return its claims.

        Args:
            raw_token: The compact JWS from the token response.
            nonce: Expected ``nonce`` claim, checked when given.

        Raises:
            VerificationError: If the signature or any standard claim is
                invalid.
        """
        ...


class JWKSTokenVerifier(TokenVerifier):
    """Verify RS/ES/PS-signed ID tokens against the provider's JWKS endpoint.

    Args:
        issuer: Expected ``iss`` claim (the discovered issuer).
        client_id: Expected member of the ``aud`` claim.
        jwks_uri: The provider's ``jwks_uri``.
        algorithms: Signing algorithms the provider advertises. ``none`` is
            always dropped.
        leeway: Clock skew in seconds tolerated for ``exp``/``iat``/``nbf``.
        jwks_client: Pre-built client exposing ``get_signing_key_from_jwt``;
            a :class:`jwt.PyJWKClient` for *jwks_uri* is created otherwise.
        timeout: Timeout in seconds for fetching the JWK set.
    """

    def __init__(
        self,
        issuer: str,
        client_id: str,
        jwks_uri: str,
        algorithms: Optional[Sequence[str]] = None,
        leeway: int = 0,
        jwks_client: Any = None,
        timeout: float = 30.0,
    ) -> None:
        self._issuer = issuer
        self._client_id = client_id
        self._algorithms = [
            alg for alg in (algorithms or ["RS256"]) if alg.lower() != "none"
        ]
        self._leeway = leeway
        if jwks_client is None:
            jwks_client = PyJWKClient(
                jwks_uri,
                cache_jwk_set=True,
                lifespan=JWKS_LIFESPAN,
                timeout=timeout,
            )
        self._jwks_client = jwks_client

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def algorithms(self) -> list[str]:
        return list(self._algorithms)

    def verify(self, raw_token: str, *, nonce: Optional[str] = None) -> IDToken:
        try:
            header = jwt.get_unverified_header(raw_token)
        except jwt.PyJWTError as exc:
            raise VerificationError(f"Malformed ID token: {exc}") from exc

        alg = header.get("alg")
        if alg not in self._algorithms:
            raise VerificationError(
                f"ID token signed with unsupported algorithm {alg!r} "
                f"(expected one of {', '.join(self._algorithms)})"
            )

        try:
            if header.get("kid") is None:
                claims = self._decode_with_any_key(raw_token, alg)
            else:
                signing_key = self._jwks_client.get_signing_key_from_jwt(raw_token)
                claims = self._decode(raw_token, signing_key.key)
        except jwt.ExpiredSignatureError as exc:
            raise VerificationError("ID token has expired") from exc
        except jwt.InvalidAudienceError as exc:
            raise VerificationError(
                f"ID token audience does not include client_id {self._client_id!r}"
            ) from exc
        except jwt.InvalidIssuerError as exc:
            raise VerificationError(
                f"ID token issuer does not match {self._issuer!r}"
            ) from exc
        except jwt.PyJWKClientError as exc:
            raise VerificationError(f"Unable to get ID token signing key: {exc}") from exc
        except jwt.PyJWTError as exc:
            raise VerificationError(f"ID token verification failed: {exc}") from exc

        if nonce is not None and claims.get("nonce") != nonce:
            raise VerificationError("ID token nonce does not match the authorization request")

        logger.debug("Verified ID token for subject %s", claims.get("sub"))
        return IDToken.from_claims(raw_token, claims)

    def _decode(self, raw_token: str, key: Any) -> dict[str, Any]:
        return jwt.decode(
            raw_token,
            key,
            algorithms=self._algorithms,
            audience=self._client_id,
            issuer=self._issuer,
            leeway=self._leeway,
            options={"require": REQUIRED_CLAIMS},
        )

    def _decode_with_any_key(self, raw_token: str, alg: str) -> dict[str, Any]:
        """Try every published key of a matching type when the token names no ``kid``."""
        key_type = _KEY_TYPES.get(alg[:2], "OKP")
        candidates = [
            jwk for jwk in self._jwks_client.get_signing_keys() if jwk.key_type == key_type
        ]
        if not candidates:
            raise jwt.PyJWKClientError(f"No {key_type} signing key in the JWK set")

        for jwk in candidates[:-1]:
            try:
                return self._decode(raw_token, jwk.key)
            except jwt.InvalidSignatureError:
                continue
        return self._decode(raw_token, candidates[-1].key)
