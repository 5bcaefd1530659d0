"""Typer application and CLI entry point for openidc.

Commands::

    openidc discover            # show the provider metadata
    openidc url                 # print an authorization URL
    openidc exchange CODE       # exchange a code and print the ID token claims
    openidc login               # full interactive login via a loopback redirect
    openidc config show|init    # inspect or write the user config file

Connection settings come from :func:`openidc.config.resolve_config`; the
root options ``--issuer``, ``--client-id``, ``--redirect-url`` and
``--scope`` take precedence over environment and config files.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. :class:`~openidc.exceptions.OpenIDCError` is mapped to
its exit code; anything else produces a crash log under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional

import typer
from rich.logging import RichHandler

from openidc import __version__
from openidc.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="openidc",
    help="OpenID Connect relying-party helper: discover, log in, verify ID tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"openidc {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Attach a Rich handler on stderr to the ``openidc`` logger when verbose."""
    from openidc.output import get_output

    log = logging.getLogger("openidc")
    for handler in list(log.handlers):
        if isinstance(handler, RichHandler):
            log.removeHandler(handler)
    if verbose:
        log.addHandler(
            RichHandler(console=get_output().stderr_console, show_path=False, markup=False)
        )
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Config file (YAML or JSON)."
    ),
    issuer: Optional[str] = typer.Option(None, "--issuer", help="Issuer URL."),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth2 client ID."),
    redirect_url: Optional[str] = typer.Option(
        None, "--redirect-url", help="Registered redirect URI."
    ),
    scope: Optional[List[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~openidc.output.OutputManager`, configures
    logging, and stores the connection overrides in ``ctx.obj``.
    """
    from openidc.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = {
        "issuer": issuer,
        "client_id": client_id,
        "redirect_url": redirect_url,
        "scopes": list(scope) if scope else None,
    }


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Print an :class:`OpenIDCError` and exit with its code."""
    from openidc.exceptions import OpenIDCError
    from openidc.output import error

    try:
        yield
    except OpenIDCError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _resolve(ctx: typer.Context) -> Any:
    from openidc.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(obj.get("config_path"), **obj.get("overrides", {}))


def _load_client(ctx: typer.Context) -> Any:
    from openidc.client import Client
    from openidc.output import debug

    config = _resolve(ctx)
    debug(f"Discovering provider metadata for {config.issuer or '<unset>'}")
    return Client.discover(config)


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("discover")
def discover_command(ctx: typer.Context) -> None:
    """Fetch and print the issuer's discovery document."""
    from openidc.output import print_mapping

    with _handle_errors():
        client = _load_client(ctx)
        print_mapping(
            client.metadata.model_dump(mode="json", exclude_none=True),
            title="Provider metadata",
        )


@app.command("url")
def url_command(
    ctx: typer.Context,
    state: Optional[str] = typer.Option(
        None, "--state", help="State value; random when omitted."
    ),
    nonce: Optional[str] = typer.Option(None, "--nonce", help="Nonce to bind into the ID token."),
) -> None:
    """Print the authorization URL that starts the login."""
    from openidc.callback import generate_state
    from openidc.output import info, print_data

    with _handle_errors():
        client = _load_client(ctx)
        state = state or generate_state()
        print_data(client.auth_code_url(state, nonce=nonce))
        info(f"state: {state}")


@app.command("exchange")
def exchange_command(
    ctx: typer.Context,
    code: str = typer.Argument(
        help="Authorization code, optionally followed by a space and the loopback redirect URI."
    ),
    nonce: Optional[str] = typer.Option(None, "--nonce", help="Expected nonce claim."),
) -> None:
    """Exchange an authorization code and print the verified ID token claims."""
    from openidc.output import print_mapping, success

    with _handle_errors():
        client = _load_client(ctx)
        token = client.code_to_id_token(code, nonce=nonce)
        success(f"ID token verified for subject {token.subject}")
        print_mapping(token.claims)


@app.command("login")
def login_command(
    ctx: typer.Context,
    oob: bool = typer.Option(
        False, "--oob", help="Paste the code manually instead of using a loopback redirect."
    ),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open a browser."),
    port: int = typer.Option(0, "--port", help="Loopback port; 0 picks a free one."),
    timeout: float = typer.Option(
        120.0, "--timeout", help="Seconds to wait for the redirect."
    ),
) -> None:
    """Run the authorization code flow interactively and print the ID token claims."""
    from openidc.callback import LoopbackReceiver, generate_nonce, generate_state
    from openidc.exceptions import InvalidUsageError
    from openidc.output import info, print_mapping, success

    with _handle_errors():
        if oob and port:
            raise InvalidUsageError("--port cannot be combined with --oob")
        client = _load_client(ctx)
        state = generate_state()
        nonce = generate_nonce()

        if oob:
            info("Open this URL in a browser and sign in:")
            info(client.auth_code_url(state, nonce=nonce))
            code = typer.prompt("Authorization code")
        else:
            with LoopbackReceiver(port=port) as receiver:
                auth_url = client.auth_code_url(
                    state, nonce=nonce, redirect_uri=receiver.redirect_uri
                )
                info(f"Waiting for the redirect on {receiver.redirect_uri}")
                if no_browser:
                    info("Open this URL in a browser and sign in:")
                    info(auth_url)
                code = receiver.wait_for_code(
                    state, auth_url=auth_url, timeout=timeout, open_browser=not no_browser
                )
                code = f"{code} {receiver.redirect_uri}"

        token = client.code_to_id_token(code, nonce=nonce)
        success(f"Logged in as {token.subject}")
        print_mapping(token.claims)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration (client secret masked)."""
    from openidc.models import validate_client_config
    from openidc.output import print_mapping, warning

    with _handle_errors():
        config = _resolve(ctx)
        data = config.model_dump(mode="json")
        if data.get("client_secret"):
            data["client_secret"] = "********"
        print_mapping(data, title="Configuration")
        for problem in validate_client_config(config):
            warning(problem)


@config_app.command("init")
def config_init(
    issuer: str = typer.Option(..., "--issuer", help="Issuer URL."),
    client_id: str = typer.Option(..., "--client-id", help="OAuth2 client ID."),
    client_secret_source: Optional[str] = typer.Option(
        None,
        "--client-secret-source",
        help="Where to read the secret: env:VAR, file:/path, prompt.",
    ),
    redirect_url: Optional[str] = typer.Option(
        None, "--redirect-url", help="Registered redirect URI."
    ),
    scope: Optional[List[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    path: Optional[Path] = typer.Option(
        None, "--path", help="File to write; defaults to the user config file."
    ),
) -> None:
    """Write a config file for later commands."""
    from openidc.config import save_config
    from openidc.exceptions import ConfigError
    from openidc.models import ClientConfig, validate_client_config
    from openidc.output import success, suggest

    with _handle_errors():
        config = ClientConfig(
            issuer=issuer,
            client_id=client_id,
            redirect_url=redirect_url,
            scopes=list(scope) if scope else None,
        )
        problems = validate_client_config(config)
        if problems:
            raise ConfigError("; ".join(problems))
        written = save_config(config, path, secret_source=client_secret_source)
        success(f"Wrote {written}")
        suggest("Try it: openidc login")


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from openidc.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``openidc`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from openidc.exceptions import OpenIDCError
        from openidc.output import error

        if isinstance(exc, OpenIDCError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
