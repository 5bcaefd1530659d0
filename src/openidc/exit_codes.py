"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one failure class of the OpenID Connect flow and is
referenced by the corresponding :class:`~openidc.exceptions.OpenIDCError`
subclass. Shell wrappers can inspect the exit code to decide whether a
retry makes sense without parsing stderr.

Example::

    $ openidc exchange "$CODE"
    $ echo $?
    6   # EXIT_VERIFICATION_FAILURE -- the ID token was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CONFIG_ERROR = 3
"""The client configuration is missing a required field or is malformed."""

EXIT_DISCOVERY_FAILURE = 4
"""The issuer's discovery document could not be fetched or parsed."""

EXIT_EXCHANGE_FAILURE = 5
"""The token endpoint rejected the authorization code."""

EXIT_VERIFICATION_FAILURE = 6
"""The ID token failed signature or claims validation."""

EXIT_CALLBACK_FAILURE = 7
"""The loopback redirect receiver did not get a usable authorization code."""
