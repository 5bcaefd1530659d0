"""Shared test fixtures for openidc.

Provides a provider discovery document, an RSA signing key with its JWK,
a factory for real RS256 ID tokens, an in-memory JWKS client, XDG config
isolation, and the Typer CLI runner. Fixtures are discovered by pytest and
available to every test module without imports.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Optional

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from jwt.algorithms import RSAAlgorithm

from openidc.output import reset_output


ISSUER = "https://issuer.example.com"
CLIENT_ID = "cli-app"
KID = "test-key"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; after
    a CliRunner invocation those streams are closed.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def issuer() -> str:
    return ISSUER


@pytest.fixture
def client_id() -> str:
    return CLIENT_ID


@pytest.fixture
def discovery_doc() -> dict[str, Any]:
    """A discovery document for :data:`ISSUER`."""
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "userinfo_endpoint": f"{ISSUER}/userinfo",
        "jwks_uri": f"{ISSUER}/.well-known/jwks.json",
        "scopes_supported": ["openid", "email", "profile"],
        "response_types_supported": ["code"],
        "id_token_signing_alg_values_supported": ["RS256"],
        "end_session_endpoint": f"{ISSUER}/logout",
    }


# ---------------------------------------------------------------------------
# Signing keys and tokens
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def signing_key() -> tuple[Any, dict[str, Any]]:
    """RSA private key and the matching public JWK (kid ``test-key``)."""
    key = generate_private_key(65537, 2048)
    jwk = RSAAlgorithm.to_jwk(key.public_key(), as_dict=True)
    jwk.update({"kid": KID, "alg": "RS256", "use": "sig"})
    return key, jwk


@pytest.fixture(scope="session")
def other_signing_key() -> Any:
    """A second RSA key that is not published in the JWKS."""
    return generate_private_key(65537, 2048)


class FakeJWKSClient:
    """In-memory stand-in for :class:`jwt.PyJWKClient`."""

    def __init__(self, jwks: list[dict[str, Any]]) -> None:
        self._keys = {k["kid"]: k for k in jwks}
        self.lookups = 0

    def get_signing_key_from_jwt(self, token: str) -> jwt.PyJWK:
        self.lookups += 1
        kid = jwt.get_unverified_header(token).get("kid")
        if kid not in self._keys:
            raise jwt.PyJWKClientError(f'Unable to find a signing key that matches: "{kid}"')
        return jwt.PyJWK(self._keys[kid])

    def get_signing_keys(self) -> list[jwt.PyJWK]:
        self.lookups += 1
        return [jwt.PyJWK(k) for k in self._keys.values()]


@pytest.fixture
def make_jwks_client() -> Callable[[list[dict[str, Any]]], FakeJWKSClient]:
    """Factory for a :class:`FakeJWKSClient` over an explicit list of JWKs."""
    return FakeJWKSClient


@pytest.fixture
def jwks_client(signing_key: tuple[Any, dict[str, Any]]) -> FakeJWKSClient:
    _, jwk = signing_key
    return FakeJWKSClient([jwk])


@pytest.fixture
def make_id_token(signing_key: tuple[Any, dict[str, Any]]) -> Callable[..., str]:
    """Factory for RS256 ID tokens; keyword arguments override claims.

    Pass ``_key`` to sign with another key, ``_kid`` to change the header
    ``kid`` (``None`` leaves it out), and a claim value of ``None`` to drop
    the claim.
    """
    default_key, _ = signing_key

    def _make(_key: Any = None, _kid: Optional[str] = KID, **overrides: Any) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-42",
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + 300,
            "email": "user42@example.com",
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(
            claims,
            _key if _key is not None else default_key,
            algorithm="RS256",
            headers={"kid": _kid} if _kid is not None else None,
        )

    return _make


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG variables at subdirectories of tmp_path, clears every
    ``OPENIDC_*`` variable and changes the working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("openidc.config._is_xdg_platform", lambda: True)

    for var in [
        "OPENIDC_CONFIG",
        "OPENIDC_ISSUER",
        "OPENIDC_CLIENT_ID",
        "OPENIDC_CLIENT_SECRET",
        "OPENIDC_REDIRECT_URL",
        "OPENIDC_SCOPES",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
