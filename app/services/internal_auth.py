from __future__ import annotations

import ipaddress
import secrets
from dataclasses import dataclass
from functools import lru_cache

import structlog
from fastapi import Request

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
FORWARDED_FOR_HEADER = "X-Forwarded-For"

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    client_ip: str | None
    reason: str | None = None


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    # An unset token on the server side locks the internal API instead of opening it.
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


@lru_cache(maxsize=32)
def parse_networks(value: str) -> tuple[IPNetwork, ...]:
    """Parse a comma separated list of addresses and CIDR blocks; bad entries are skipped."""
    networks: list[IPNetwork] = []
    for entry in (part.strip() for part in value.split(",")):
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("internal_network_entry_invalid", entry=entry)
    return tuple(networks)


def _normalize_ip(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def _ip_in_networks(client_ip: str | None, networks: tuple[IPNetwork, ...]) -> bool:
    if client_ip is None or not networks:
        return False
    try:
        parsed = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(parsed in network for network in networks)


def is_client_ip_allowed(*, client_ip: str | None, allowlist: str) -> bool:
    return _ip_in_networks(client_ip, parse_networks(allowlist))


def extract_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    peer_ip = _normalize_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if not forwarded_for or not _ip_in_networks(peer_ip, parse_networks(trusted_proxies)):
        return peer_ip

    # First hop is the original caller; a malformed hop leaves the caller unknown.
    return _normalize_ip(forwarded_for.split(",", maxsplit=1)[0])


def evaluate_internal_access(
    request: Request,
    *,
    expected_token: str,
    allowlist: str,
    trusted_proxies: str = "",
) -> AccessDecision:
    client_ip = extract_client_ip(request, trusted_proxies=trusted_proxies)
    if not is_client_ip_allowed(client_ip=client_ip, allowlist=allowlist):
        return AccessDecision(allowed=False, client_ip=client_ip, reason="ip_not_allowed")

    if not is_valid_internal_token(
        expected_token=expected_token,
        received_token=request.headers.get(INTERNAL_TOKEN_HEADER),
    ):
        return AccessDecision(allowed=False, client_ip=client_ip, reason="invalid_credentials")
    return AccessDecision(allowed=True, client_ip=client_ip)
