"""Loopback redirect URIs and the ``"<code> <redirect-uri>"`` convention.

Installed applications usually run a short-lived HTTP listener on an
ephemeral port to receive the authorization redirect (:rfc:`8252`). The
port is not known when the authorization URL is configured, so the token
exchange has to send the redirect URI the listener actually used. Callers
pass it together with the code as a single string::

    abc123 http://127.0.0.1:53127/callback

Only loopback ``http`` URIs with an explicit port are accepted as an
override. Anything else is treated as part of the code, so a pasted value
can never redirect the exchange to a remote host.
"""

from __future__ import annotations

import re
from typing import Optional

LOOPBACK_REDIRECT_URI = re.compile(r"\Ahttp://(localhost|127[.]0[.]0[.]1):\d+/\S*\Z")


def is_loopback_redirect(uri: str) -> bool:
    """Return True if *uri* is an ``http://localhost:<port>/...`` style URI."""
    return LOOPBACK_REDIRECT_URI.match(uri) is not None


def split_code(code: str) -> tuple[str, Optional[str]]:
    """Split ``"<code> <loopback-uri>"`` into the code and a redirect override.

    The input is split on single spaces. Only when that yields exactly two
    pieces and the second is a loopback redirect URI is the override
    returned; in every other case the whole input is the code.

    Args:
        code: Authorization code as entered by the user.

    Returns:
        A tuple of ``(code, redirect_uri_or_None)``.

    Example::

        >>> split_code("abc123 http://localhost:4123/cb")
        ('abc123', 'http://localhost:4123/cb')
        >>> split_code("abc123 https://evil.example/cb")
        ('abc123 https://evil.example/cb', None)
    """
    pieces = code.split(" ")
    if len(pieces) == 2 and is_loopback_redirect(pieces[1]):
        return pieces[0], pieces[1]
    return code, None
