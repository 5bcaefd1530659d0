"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module turns config files, environment variables and CLI flags into a
single :class:`~openidc.models.ClientConfig`:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.openidc/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Config files** -- YAML (``.yaml``/``.yml``) or JSON documents holding
  the :class:`~openidc.models.ClientConfig` fields plus an optional
  ``client_secret_source``. The user file lives at
  ``<config_dir>/config.yaml``; a project file ``./openidc.yaml`` or an
  explicit ``--config`` path is layered on top.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, the project/explicit file and the user file.
* **Credential resolution** -- :func:`resolve_credential` reads the client
  secret from env vars, files or an interactive prompt.

Config files are never modified while loading; :func:`save_config`
writes atomically with owner-only permissions.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from openidc.exceptions import ConfigError
from openidc.models import ClientConfig

_APP_NAME = "openidc"
_CONFIG_FILENAME = "config.yaml"
_PROJECT_CONFIG_FILENAME = "openidc.yaml"

SECRET_SOURCE_KEY = "client_secret_source"

ENV_CONFIG = "OPENIDC_CONFIG"

# Environment variable -> ClientConfig field.
ENV_OVERRIDES = {
    "OPENIDC_ISSUER": "issuer",
    "OPENIDC_CLIENT_ID": "client_id",
    "OPENIDC_CLIENT_SECRET": "client_secret",
    "OPENIDC_REDIRECT_URL": "redirect_url",
    "OPENIDC_SCOPES": "scopes",
}

_ALLOWED_KEYS = set(ClientConfig.model_fields) | {SECRET_SOURCE_KEY}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/openidc/`` (default ``~/.config/openidc/``).
    On macOS/Windows: ``~/.openidc/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/openidc/`` (default ``~/.local/share/openidc/``).
    On macOS/Windows: ``~/.openidc/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def user_config_path() -> Path:
    """Path to the user-wide config file."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: int = 0o600) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. The file is given
    *mode* before the rename, so a secret is never world-readable.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config files ---


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a dict of config keys.

    Args:
        path: File to read. ``.json`` files are parsed as JSON, everything
            else as YAML.

    Returns:
        The mapping found in the file (empty for an empty file).

    Raises:
        ConfigError: If the file is missing, unparsable, not a mapping, or
            contains unknown keys.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {path}: expected a mapping")

    unknown = sorted(set(data) - _ALLOWED_KEYS)
    if unknown:
        raise ConfigError(f"Unknown keys in {path}: {', '.join(unknown)}")
    return data


def save_config(
    config: ClientConfig,
    path: Optional[Path] = None,
    secret_source: Optional[str] = None,
) -> Path:
    """Persist *config* as YAML, atomically and readable only by the owner.

    Args:
        config: Configuration to write.
        path: Destination; defaults to :func:`user_config_path`.
        secret_source: When given, stored as ``client_secret_source`` and the
            literal secret is left out of the file.

    Returns:
        The path written.
    """
    target = path or user_config_path()
    data = config.model_dump(mode="json", exclude_defaults=True)
    data["issuer"] = config.issuer
    data["client_id"] = config.client_id
    if secret_source:
        data.pop("client_secret", None)
        data[SECRET_SOURCE_KEY] = secret_source
    if target.suffix.lower() == ".json":
        text = json.dumps(data, indent=2) + "\n"
    else:
        text = yaml.safe_dump(data, sort_keys=False)
    _atomic_write(target, text)
    return target


def find_project_config() -> Optional[Path]:
    """Return ``./openidc.yaml`` (or ``./openidc.json``) if present."""
    for name in (_PROJECT_CONFIG_FILENAME, "openidc.yml", "openidc.json"):
        candidate = Path.cwd() / name
        if candidate.is_file():
            return candidate
    return None


# --- Precedence resolution ---


def _env_values() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, key in ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            values[key] = value
    return values


def resolve_config(
    cli_config: Optional[str] = None,
    **overrides: Any,
) -> ClientConfig:
    """Resolve the effective client configuration.

    Precedence (high to low):
        1. CLI flags (``overrides``; ``None`` values are ignored)
        2. Environment variables (``OPENIDC_ISSUER``, ``OPENIDC_CLIENT_ID``,
           ``OPENIDC_CLIENT_SECRET``, ``OPENIDC_REDIRECT_URL``,
           ``OPENIDC_SCOPES``)
        3. Explicit config file (``cli_config`` or ``$OPENIDC_CONFIG``),
           otherwise the project file ``./openidc.yaml``
        4. User config (``~/.config/openidc/config.yaml``)
        5. Defaults

    ``client_secret_source`` is resolved with :func:`resolve_credential`
    only when no literal ``client_secret`` ended up in the merged values.

    Returns:
        The validated :class:`~openidc.models.ClientConfig`. Emptiness of
        ``issuer``/``client_id`` is reported later, by the client.

    Raises:
        ConfigError: On unreadable files, unknown keys, bad credential
            sources or invalid values.
    """
    merged: dict[str, Any] = {}

    user_path = user_config_path()
    if user_path.is_file():
        merged.update(load_config_file(user_path))

    explicit = cli_config or os.environ.get(ENV_CONFIG)
    if explicit:
        merged.update(load_config_file(Path(explicit).expanduser()))
    else:
        project = find_project_config()
        if project is not None:
            merged.update(load_config_file(project))

    merged.update(_env_values())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    secret_source = merged.pop(SECRET_SOURCE_KEY, None)
    if secret_source and not merged.get("client_secret"):
        merged["client_secret"] = resolve_credential(secret_source)

    try:
        return ClientConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for client secret: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Client secret: ")

    raise ConfigError(f"Unknown credential source format: {source}")
