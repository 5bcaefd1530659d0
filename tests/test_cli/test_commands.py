"""Integration tests for the openidc CLI.

Drives the real Typer app with :class:`typer.testing.CliRunner`. Provider
discovery is replaced by a pre-built :class:`~openidc.client.Client` whose
exchanger returns canned token responses and whose verifier checks real
RS256 tokens against an in-memory JWKS.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import yaml

from openidc.app import app
from openidc.client import Client
from openidc.config import user_config_path
from openidc.exceptions import ExchangeError
from openidc.models import ClientConfig, ProviderMetadata, TokenResponse
from openidc.oauth2 import OAuth2Config, TokenExchanger
from openidc.verifier import JWKSTokenVerifier

ISSUER = "https://issuer.example.com"
CLIENT_ID = "cli-app"
CONNECT = ["--issuer", ISSUER, "--client-id", CLIENT_ID]


class CannedExchanger(TokenExchanger):
    def __init__(self, payload: Optional[dict[str, Any]] = None, error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.calls: list[tuple[str, Optional[str]]] = []

    def exchange(
        self,
        config: OAuth2Config,
        code: str,
        *,
        redirect_uri: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TokenResponse:
        self.calls.append((code, redirect_uri))
        if self.error is not None:
            raise self.error
        return TokenResponse.model_validate(self.payload)


@pytest.fixture
def build_client(discovery_doc: dict, jwks_client):
    metadata = ProviderMetadata.model_validate(discovery_doc)

    def _build(exchanger: TokenExchanger) -> Client:
        return Client(
            ClientConfig(issuer=ISSUER, client_id=CLIENT_ID),
            metadata,
            exchanger=exchanger,
            verifier=JWKSTokenVerifier(
                ISSUER, CLIENT_ID, metadata.jwks_uri, jwks_client=jwks_client
            ),
        )

    return _build


def test_version(cli_runner) -> None:
    result = cli_runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "openidc 0.1.0" in result.output


class TestDiscover:
    def test_prints_metadata(self, cli_runner, isolated_config: Path, discovery_doc: dict) -> None:
        response = httpx.Response(
            200,
            json=discovery_doc,
            request=httpx.Request("GET", f"{ISSUER}/.well-known/openid-configuration"),
        )
        with patch("openidc.discovery.httpx.get", return_value=response):
            result = cli_runner.invoke(app, CONNECT + ["--plain", "discover"])

        assert result.exit_code == 0, result.output
        assert f"token_endpoint\t{ISSUER}/token" in result.output
        assert f"end_session_endpoint\t{ISSUER}/logout" in result.output

    def test_missing_issuer_exits_with_config_error(self, cli_runner, isolated_config: Path) -> None:
        with patch("openidc.discovery.httpx.get") as get:
            result = cli_runner.invoke(app, ["--client-id", CLIENT_ID, "discover"])

        assert result.exit_code == 3
        assert "issuer is missing" in result.output
        get.assert_not_called()

    def test_unreachable_provider(self, cli_runner, isolated_config: Path) -> None:
        with patch(
            "openidc.discovery.httpx.get", side_effect=httpx.ConnectError("connection refused")
        ):
            result = cli_runner.invoke(app, CONNECT + ["discover"])

        assert result.exit_code == 4
        assert "connection refused" in result.output

    def test_provider_text_is_not_markup(self, cli_runner, isolated_config: Path) -> None:
        response = httpx.Response(
            500,
            text="up [/oops] [bold]",
            request=httpx.Request("GET", f"{ISSUER}/.well-known/openid-configuration"),
        )
        with patch("openidc.discovery.httpx.get", return_value=response):
            result = cli_runner.invoke(app, CONNECT + ["discover"])

        assert result.exit_code == 4
        assert "up [/oops] [bold]" in result.output


class TestURL:
    def test_prints_authorization_url(self, cli_runner, isolated_config: Path, build_client) -> None:
        with patch.object(Client, "discover", return_value=build_client(CannedExchanger())):
            result = cli_runner.invoke(
                app, CONNECT + ["url", "--state", "xyz", "--nonce", "n-1"]
            )

        assert result.exit_code == 0, result.output
        url = next(line for line in result.output.splitlines() if line.startswith("https://"))
        query = parse_qs(urlparse(url).query)
        assert query["state"] == ["xyz"]
        assert query["nonce"] == ["n-1"]
        assert query["client_id"] == [CLIENT_ID]


class TestExchange:
    def test_prints_claims(
        self, cli_runner, isolated_config: Path, build_client, make_id_token
    ) -> None:
        exchanger = CannedExchanger({"access_token": "at", "id_token": make_id_token()})
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(
                app, CONNECT + ["--plain", "exchange", "abc123 http://localhost:4123/cb"]
            )

        assert result.exit_code == 0, result.output
        assert "sub\tuser-42" in result.output
        assert "ID token verified for subject user-42" in result.output
        assert exchanger.calls == [("abc123", "http://localhost:4123/cb")]

    def test_rejected_code(self, cli_runner, isolated_config: Path, build_client) -> None:
        exchanger = CannedExchanger(
            error=ExchangeError("Token exchange failed with status 400: invalid_grant")
        )
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(app, CONNECT + ["exchange", "abc123"])

        assert result.exit_code == 5
        assert "invalid_grant" in result.output

    def test_missing_id_token(self, cli_runner, isolated_config: Path, build_client) -> None:
        exchanger = CannedExchanger({"access_token": "at"})
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(app, CONNECT + ["exchange", "abc123"])

        assert result.exit_code == 5
        assert "id_token" in result.output

    def test_invalid_id_token(
        self, cli_runner, isolated_config: Path, build_client, make_id_token
    ) -> None:
        exchanger = CannedExchanger(
            {"access_token": "at", "id_token": make_id_token(aud="other-app")}
        )
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(app, CONNECT + ["exchange", "abc123"])

        assert result.exit_code == 6
        assert "audience" in result.output


NONCE = "fixed-nonce"


class TestLogin:
    @pytest.fixture(autouse=True)
    def _fixed_nonce(self):
        with patch("openidc.callback.generate_nonce", return_value=NONCE):
            yield

    def test_out_of_band(
        self, cli_runner, isolated_config: Path, build_client, make_id_token
    ) -> None:
        exchanger = CannedExchanger(
            {"access_token": "at", "id_token": make_id_token(nonce=NONCE)}
        )
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(
                app, CONNECT + ["--plain", "login", "--oob"], input="abc123\n"
            )

        assert result.exit_code == 0, result.output
        assert "Logged in as user-42" in result.output
        assert f"nonce\t{NONCE}" in result.output
        assert exchanger.calls == [("abc123", None)]

    def test_loopback(self, cli_runner, isolated_config: Path, build_client, make_id_token) -> None:
        exchanger = CannedExchanger(
            {"access_token": "at", "id_token": make_id_token(nonce=NONCE)}
        )
        with patch.object(Client, "discover", return_value=build_client(exchanger)), patch(
            "openidc.callback.LoopbackReceiver.wait_for_code", return_value="abc123"
        ) as wait:
            result = cli_runner.invoke(app, CONNECT + ["--plain", "login", "--no-browser"])

        assert result.exit_code == 0, result.output
        code, redirect_uri = exchanger.calls[0]
        assert code == "abc123"
        assert redirect_uri is not None
        assert redirect_uri.startswith("http://127.0.0.1:")
        assert redirect_uri.endswith("/callback")

        auth_url = wait.call_args.kwargs["auth_url"]
        query = parse_qs(urlparse(auth_url).query)
        assert query["redirect_uri"] == [redirect_uri]
        assert query["nonce"] == [NONCE]
        assert wait.call_args.kwargs["open_browser"] is False

    def test_nonce_mismatch(
        self, cli_runner, isolated_config: Path, build_client, make_id_token
    ) -> None:
        exchanger = CannedExchanger(
            {"access_token": "at", "id_token": make_id_token(nonce="replayed-nonce")}
        )
        with patch.object(Client, "discover", return_value=build_client(exchanger)):
            result = cli_runner.invoke(app, CONNECT + ["login", "--oob"], input="abc123\n")

        assert result.exit_code == 6
        assert "nonce" in result.output

    def test_port_in_use(self, cli_runner, isolated_config: Path, build_client) -> None:
        from openidc.callback import LoopbackReceiver

        with LoopbackReceiver() as busy, patch.object(
            Client, "discover", return_value=build_client(CannedExchanger())
        ):
            result = cli_runner.invoke(
                app, CONNECT + ["login", "--no-browser", "--port", str(busy.port)]
            )

        assert result.exit_code == 7
        assert "Cannot listen" in result.output


class TestConfigCommands:
    def test_init_then_show(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("MY_SECRET", "s3cret")
        result = cli_runner.invoke(
            app,
            [
                "config",
                "init",
                "--issuer",
                ISSUER,
                "--client-id",
                CLIENT_ID,
                "--client-secret-source",
                "env:MY_SECRET",
                "--scope",
                "openid",
                "--scope",
                "email",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Wrote" in result.output

        data = yaml.safe_load(user_config_path().read_text(encoding="utf-8"))
        assert data == {
            "issuer": ISSUER,
            "client_id": CLIENT_ID,
            "scopes": ["openid", "email"],
            "client_secret_source": "env:MY_SECRET",
        }

        result = cli_runner.invoke(app, ["--plain", "config", "show"])
        assert result.exit_code == 0, result.output
        assert f"issuer\t{ISSUER}" in result.output
        assert "scopes\topenid email" in result.output
        assert "client_secret\t********" in result.output
        assert "s3cret" not in result.output

    def test_show_warns_about_missing_values(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "config", "show"])
        assert result.exit_code == 0
        assert "issuer is missing" in result.output

    def test_show_rejects_bad_file(self, cli_runner, isolated_config: Path) -> None:
        (isolated_config / "openidc.yaml").write_text("colour: blue\n", encoding="utf-8")
        result = cli_runner.invoke(app, ["config", "show"])
        assert result.exit_code == 3
        assert "colour" in result.output

    def test_init_rejects_empty_client_id(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["config", "init", "--issuer", ISSUER, "--client-id", " "]
        )
        assert result.exit_code == 3


def test_login_rejects_port_with_oob(cli_runner, isolated_config: Path) -> None:
    with patch.object(Client, "discover") as discover:
        result = cli_runner.invoke(app, CONNECT + ["login", "--oob", "--port", "8400"])

    assert result.exit_code == 2
    assert "--port" in result.output
    discover.assert_not_called()
