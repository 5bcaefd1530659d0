"""OpenID Provider discovery (OpenID Connect Discovery 1.0).

Provides the :class:`ProviderDiscovery` capability and its HTTP
implementation :class:`HTTPProviderDiscovery`, which fetches
``<issuer>/.well-known/openid-configuration`` once and turns it into a
:class:`~openidc.models.ProviderMetadata`.

See Also:
    :class:`openidc.client.Client` for the consumer of the metadata.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from openidc.exceptions import DiscoveryError
from openidc.models import ProviderMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def well_known_url(issuer: str) -> str:
    """Return the discovery document URL for *issuer*."""
    return issuer.rstrip("/") + WELL_KNOWN_PATH


class ProviderDiscovery(ABC):
    """Capability that resolves an issuer URL to provider metadata."""

    @abstractmethod
    def discover(self, issuer: str, *, timeout: Optional[float] = None) -> ProviderMetadata:
        """Fetch and validate the metadata published by *issuer*.

        Raises:
            DiscoveryError: If the metadata cannot be fetched or parsed.
        """
        ...


class HTTPProviderDiscovery(ProviderDiscovery):
    """Fetch the discovery document over HTTP with :mod:`httpx`.

    The ``issuer`` member of the document must match the configured issuer
    (ignoring a trailing slash); a mismatch means the document belongs to a
    different provider and is rejected.
    """

    def __init__(self, default_timeout: float = 30.0) -> None:
        self._default_timeout = default_timeout

    def discover(self, issuer: str, *, timeout: Optional[float] = None) -> ProviderMetadata:
        url = well_known_url(issuer)
        logger.debug("Fetching provider metadata from %s", url)
        try:
            response = httpx.get(
                url,
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self._default_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            doc: Any = response.json()
        except httpx.HTTPStatusError as exc:
            raise DiscoveryError(
                f"OpenID discovery failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"OpenID discovery failed: {exc}") from exc
        except ValueError as exc:
            raise DiscoveryError(f"OpenID discovery document at {url} is not JSON: {exc}") from exc

        if not isinstance(doc, dict):
            raise DiscoveryError(f"OpenID discovery document at {url} is not a JSON object")

        try:
            metadata = ProviderMetadata.model_validate(doc)
        except ValidationError as exc:
            missing = sorted(
                str(err["loc"][0]) for err in exc.errors() if err["type"] == "missing"
            )
            if missing:
                raise DiscoveryError(
                    f"OpenID discovery document missing {', '.join(repr(m) for m in missing)}"
                ) from exc
            raise DiscoveryError(f"Invalid OpenID discovery document: {exc}") from exc

        if metadata.issuer.rstrip("/") != issuer.rstrip("/"):
            raise DiscoveryError(
                f"Issuer mismatch: expected {issuer!r}, discovery document says "
                f"{metadata.issuer!r}"
            )

        logger.debug("Discovered token endpoint %s", metadata.token_endpoint)
        return metadata
