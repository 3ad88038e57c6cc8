"""
Allowlist consulted before an HTTP request step may call a host.
"""

from __future__ import annotations

from typing import Awaitable, Iterable, List, Protocol, Union, runtime_checkable
from urllib.parse import urlsplit

from shared.config import config


@runtime_checkable
class HostAllowlist(Protocol):
    def is_allowed(self, url: str) -> Union[bool, Awaitable[bool]]:
        """Return (or resolve to) True when ``url`` may be called."""


class StaticHostAllowlist:
    """
    Fixed set of hosts. A URL is allowed when its hostname equals one of the
    hosts or is a subdomain of one. Unparsable URLs are never allowed.
    """

    def __init__(self, hosts: Iterable[str] | None = None) -> None:
        source = config.allowed_hosts if hosts is None else hosts
        self._hosts: List[str] = [host.strip().lower() for host in source if host.strip()]

    @property
    def hosts(self) -> List[str]:
        return list(self._hosts)

    def is_allowed(self, url: str) -> bool:
        try:
            hostname = urlsplit(url).hostname
        except ValueError:
            return False
        if not hostname:
            return False
        hostname = hostname.lower()
        return any(hostname == allowed or hostname.endswith(f".{allowed}") for allowed in self._hosts)
