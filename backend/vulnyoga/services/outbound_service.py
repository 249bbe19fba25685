# Overview: Service-layer operations for outbound fetches; URL guard and image proxy.

"""
Outbound Image Proxy

WHY: Item images may live on remote hosts. Fetching a caller-supplied URL
from the server is the classic SSRF surface.

STRICT: http/https only, and every address the host resolves to must be
public (no loopback, private, link-local, reserved, multicast). Redirects
are not followed.
PERMISSIVE: any URL is fetched, redirects followed; each fetch is audited.
"""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlsplit

import httpx

from ..policy import PolicyConfig
from ..security import CATEGORY_SSRF, Principal, SecurityEventRecord
from ..validation import ValidationError
from .authorization import Decision


ALLOWED_SCHEMES = {"http", "https"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class OutboundFetchError(Exception):
    """Remote host unreachable or answered with an error status."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class FetchedResource:
    content: bytes
    content_type: str


def _resolve_host(host: str) -> list[str]:
    infos = socket.getaddrinfo(host, None)
    return [info[4][0] for info in infos]


def _is_public(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def check_outbound_url(
    principal: Principal | None,
    url: str,
    policy: PolicyConfig,
    *,
    resolver: Callable[[str], list[str]] = _resolve_host,
) -> Decision:
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("url parameter required")
    url = url.strip()
    principal_id = principal.id if principal else None

    if not policy.ssrf_strict:
        return Decision.allow(SecurityEventRecord(
            category=CATEGORY_SSRF,
            principal_id=principal_id,
            target_id=None,
            detail=f"Unvalidated outbound fetch: {url}",
        ))

    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return Decision.deny(f"URL scheme '{parts.scheme}' not allowed")
    if not parts.hostname:
        return Decision.deny("URL has no host")

    try:
        addresses = resolver(parts.hostname)
    except (OSError, UnicodeError):
        return Decision.deny("URL host does not resolve")
    if not addresses:
        return Decision.deny("URL host does not resolve")

    try:
        if not all(_is_public(a) for a in addresses):
            return Decision.deny("URL resolves to a non-public address")
    except ValueError:
        return Decision.deny("URL resolves to an invalid address")

    return Decision.allow()


def fetch_image(
    url: str,
    policy: PolicyConfig,
    *,
    timeout: float = 5.0,
    client: httpx.Client | None = None,
) -> FetchedResource:
    """GET the URL; the caller must have run check_outbound_url first."""
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout, follow_redirects=not policy.ssrf_strict)
    try:
        response = client.get(url.strip())
    except httpx.HTTPError as exc:
        raise OutboundFetchError(f"Failed to fetch image: {exc.__class__.__name__}")
    finally:
        if owns_client:
            client.close()

    if response.status_code >= 400:
        raise OutboundFetchError("Failed to fetch image", status_code=response.status_code)
    if policy.ssrf_strict and 300 <= response.status_code < 400:
        raise OutboundFetchError("Redirects are not followed")

    content = response.content
    if len(content) > MAX_IMAGE_BYTES:
        raise OutboundFetchError("Image too large", status_code=413)

    content_type = response.headers.get("content-type", "application/octet-stream")
    if policy.ssrf_strict and not content_type.startswith("image/"):
        raise OutboundFetchError("Remote resource is not an image", status_code=415)
    return FetchedResource(content=content, content_type=content_type)
