"""Source-address allow-listing for administrative routes."""

from __future__ import annotations

import ipaddress
from typing import Iterable, List

from .errors import ConfigurationError, UnauthorizedOrigin
from .logging_config import log_security_event

WILDCARD = "*"


def _parse_address(value: str):
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


class IPAllowlistGuard:
    """Admit requests whose source address is in the configured list."""

    def __init__(self, entries: Iterable[str]) -> None:
        self._wildcard = False
        self._networks: List[ipaddress.IPv4Network | ipaddress.IPv6Network] = []

        for entry in entries:
            item = (entry or "").strip()
            if not item:
                continue
            if item == WILDCARD:
                self._wildcard = True
                continue
            try:
                self._networks.append(ipaddress.ip_network(item, strict=False))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid admin allow-list entry '{item}'") from exc

    @property
    def allows_any(self) -> bool:
        return self._wildcard

    def check(self, address: str | None) -> bool:
        if self._wildcard:
            return True
        if not address:
            return False

        parsed = _parse_address(address)
        if parsed is None:
            return False
        if getattr(parsed, "ipv4_mapped", None) is not None:
            parsed = parsed.ipv4_mapped
        return any(parsed.version == network.version and parsed in network for network in self._networks)

    def enforce(self, address: str | None, *, path: str | None = None) -> None:
        """Raise ``UnauthorizedOrigin`` when *address* is not allowed."""

        if self.check(address):
            return
        log_security_event("unauthorized_origin", identity=address or "unknown", path=path)
        raise UnauthorizedOrigin()
