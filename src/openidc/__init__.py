"""openidc -- a small OpenID Connect relying-party helper.

Discovers a provider's configuration, builds authorization-code-flow URLs,
exchanges authorization codes for tokens and verifies the returned ID
token. Signature checking and JWK handling are done by PyJWT; HTTP by
httpx.

Typical use::

    from openidc.client import init

    client = init("https://accounts.example.com", "cli-app")
    print(client.auth_code_url(state))
    token = client.code_to_id_token(code)

Modules:
    client: The :class:`~openidc.client.Client` adapter and :func:`~openidc.client.init`.
    discovery: Provider metadata discovery.
    oauth2: Authorization URLs and the code exchange.
    verifier: ID token verification against the provider's JWKS.
    redirect: Loopback redirect URIs and the ``"<code> <uri>"`` convention.
    callback: One-shot loopback redirect receiver.
    models: Pydantic models shared across the package.
    config: XDG-aware config files, env vars and credential sources.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"
