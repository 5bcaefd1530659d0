"""Exception hierarchy for openidc.

All exceptions inherit from :class:`OpenIDCError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`openidc.exit_codes`.
Library callers catch the specific subclasses; the CLI entry point in
:func:`openidc.app.main` catches ``OpenIDCError`` and exits with the
matching code.

Subclass hierarchy::

    OpenIDCError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- ConfigError             (exit 3)
    +-- DiscoveryError          (exit 4)
    +-- ExchangeError           (exit 5)
    |   +-- MissingIDTokenError (exit 5)
    +-- VerificationError       (exit 6)
    +-- CallbackError           (exit 7)
"""

from openidc.exit_codes import (
    EXIT_CALLBACK_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_DISCOVERY_FAILURE,
    EXIT_EXCHANGE_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_VERIFICATION_FAILURE,
)


class OpenIDCError(Exception):
    """Base exception for all openidc errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OpenIDCError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(OpenIDCError):
    """Raised when the issuer or client ID is missing, or a config file is invalid.

    Not retryable: the configuration has to be fixed first.
    """

    exit_code = EXIT_CONFIG_ERROR


class DiscoveryError(OpenIDCError):
    """Raised when the issuer's metadata is unreachable or invalid.

    Retryable by the caller; the client never retries on its own.
    """

    exit_code = EXIT_DISCOVERY_FAILURE


class ExchangeError(OpenIDCError):
    """Raised when the token endpoint rejects a code or cannot be reached.

    Carries the provider's OAuth2 ``error`` code and ``error_description``
    when the response included them.
    """

    exit_code = EXIT_EXCHANGE_FAILURE

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class MissingIDTokenError(ExchangeError):
    """Raised when a successful token response carries no ``id_token``."""


class VerificationError(OpenIDCError):
    """Raised when an ID token fails signature, issuer, audience or expiry checks."""

    exit_code = EXIT_VERIFICATION_FAILURE


class CallbackError(OpenIDCError):
    """Raised when the loopback redirect receiver gets an error, a bad state, or nothing."""

    exit_code = EXIT_CALLBACK_FAILURE
