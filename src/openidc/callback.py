"""Loopback redirect receiver for interactive logins (:rfc:`8252`).

:class:`LoopbackReceiver` binds ``127.0.0.1`` on an ephemeral port so that
the redirect URI is only known at run time. The authorization URL is built
with :attr:`LoopbackReceiver.redirect_uri`, the browser is opened, and
:meth:`LoopbackReceiver.wait_for_code` serves the single redirect that
carries the authorization code.

The code and the redirect URI it was issued for are later joined as
``"<code> <redirect_uri>"`` so that
:meth:`openidc.client.Client.code_to_id_token` sends the matching
``redirect_uri`` to the token endpoint.
"""

from __future__ import annotations

import html
import logging
import secrets
import threading
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from openidc.exceptions import CallbackError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
DEFAULT_TIMEOUT = 120.0


class _OneShotServer(HTTPServer):
    timed_out = False

    def handle_timeout(self) -> None:
        self.timed_out = True


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in the redirect."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value bound into the ID token's ``nonce`` claim."""
    return secrets.token_urlsafe(32)


class LoopbackReceiver:
    """One-shot HTTP server that captures the authorization redirect.

    The socket is bound on construction so that :attr:`redirect_uri` is
    usable immediately. Use as a context manager to guarantee the socket is
    closed.

    Args:
        host: Loopback address to bind.
        port: Port to bind; ``0`` picks a free ephemeral port.
        path: Path component of the redirect URI.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, path: str = CALLBACK_PATH) -> None:
        self._path = path
        self._result: dict[str, Optional[str]] = {
            "code": None,
            "state": None,
            "error": None,
            "error_description": None,
        }
        try:
            self._server = _OneShotServer((host, port), self._make_handler())
        except OSError as exc:
            raise CallbackError(f"Cannot listen on {host}:{port}: {exc}") from exc
        self._host = host

    def __enter__(self) -> LoopbackReceiver:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://{self._host}:{self.port}{self._path}"

    def close(self) -> None:
        self._server.server_close()

    def _make_handler(self) -> type[BaseHTTPRequestHandler]:
        result = self._result
        expected_path = self._path

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != expected_path:
                    self.send_error(404)
                    return
                params = parse_qs(parsed.query)

                result["state"] = params.get("state", [None])[0]
                if "error" in params:
                    result["error"] = params["error"][0]
                    result["error_description"] = params.get("error_description", [None])[0]
                    body = f"Authorization failed: {result['error']}"
                    if result["error_description"]:
                        body += f" - {result['error_description']}"
                elif "code" in params:
                    result["code"] = params["code"][0]
                    body = (
                        "Authorization successful! You can close this window "
                        "and return to the terminal."
                    )
                else:
                    result["error"] = "no_code"
                    body = "No authorization code received."

                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(
                    f"<html><body><h2>{html.escape(body)}</h2></body></html>".encode("utf-8")
                )

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("callback: " + format, *args)

        return CallbackHandler

    def wait_for_code(
        self,
        expected_state: str,
        auth_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        open_browser: bool = True,
    ) -> str:
        """Optionally open *auth_url*, then serve requests until the redirect arrives.

        Requests for other paths (``/favicon.ico``) are answered with 404
        and do not end the wait.

        Args:
            expected_state: The ``state`` sent in the authorization request.
            auth_url: URL to open in the browser.
            timeout: Seconds to wait for each request.
            open_browser: Open *auth_url* with :mod:`webbrowser`.

        Returns:
            The authorization code.

        Raises:
            CallbackError: If the provider returned an error, no request
                arrived in time, the state does not match, or no code was
                sent.
        """
        if auth_url and open_browser:
            threading.Thread(target=webbrowser.open, args=(auth_url,), daemon=True).start()

        self._server.timeout = timeout
        while not self._received():
            self._server.handle_request()
            if self._server.timed_out:
                raise CallbackError(
                    f"No authorization redirect received within {timeout:g} seconds"
                )

        if self._result["error"]:
            message = f"Authorization failed: {self._result['error']}"
            if self._result["error_description"]:
                message += f" - {self._result['error_description']}"
            raise CallbackError(message)
        if self._result["state"] != expected_state:
            raise CallbackError("State mismatch in authorization redirect")
        if not self._result["code"]:
            raise CallbackError("No authorization code received from callback")
        return self._result["code"]

    def _received(self) -> bool:
        return bool(self._result["code"] or self._result["error"])
