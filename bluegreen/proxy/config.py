"""Typed reverse-proxy configuration.

Every value that reaches the rendered file is validated here, so the
template never has to quote or escape anything.
"""

import re
from dataclasses import dataclass
from typing import Tuple

from bluegreen.errors import InvalidTrafficState

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_HOST_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_PATH_RE = re.compile(r"^/[A-Za-z0-9/_.~-]*$")
_SERVER_NAME_RE = re.compile(r"^[A-Za-z0-9*_.-]+( [A-Za-z0-9*_.-]+)*$")


def _check(pattern: "re.Pattern", value: str, what: str) -> None:
    if not isinstance(value, str) or not pattern.match(value):
        raise ValueError(f"Invalid {what} for proxy configuration: {value!r}")


@dataclass(frozen=True)
class ProxyOptions:
    """Deployment-wide proxy settings that do not change between steps."""

    server_name: str = "localhost"
    listen_port: int = 80
    upstream_host_template: str = "{app_name}-{slot}-app"

    @classmethod
    def from_settings(cls, settings) -> "ProxyOptions":
        return cls(
            server_name=settings.domain_name,
            listen_port=settings.nginx_port,
            upstream_host_template=settings.upstream_host_template,
        )


@dataclass(frozen=True)
class Upstream:
    """One slot's backend as the proxy sees it."""

    slot: str
    host: str
    port: int
    weight: int

    def __post_init__(self):
        _check(_NAME_RE, self.slot, "slot")
        _check(_HOST_RE, self.host, "upstream host")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid upstream port {self.port}")
        if not 0 <= self.weight <= 100:
            raise InvalidTrafficState(f"Upstream weight {self.weight} is outside 0..100")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProxyConfig:
    """Everything the proxy template needs for one traffic state."""

    app_name: str
    upstreams: Tuple[Upstream, ...]
    health_path: str = "/health"
    server_name: str = "localhost"
    listen_port: int = 80

    def __post_init__(self):
        _check(_NAME_RE, self.app_name, "app name")
        _check(_PATH_RE, self.health_path, "health path")
        _check(_SERVER_NAME_RE, self.server_name, "server name")
        if not 0 < self.listen_port < 65536:
            raise ValueError(f"Invalid listen port {self.listen_port}")
        if not self.upstreams:
            raise ValueError("Proxy configuration needs at least one upstream")
        total = sum(u.weight for u in self.upstreams)
        if total != 100:
            raise InvalidTrafficState(f"Upstream weights must sum to 100, got {total}")

    @property
    def upstream_name(self) -> str:
        return self.app_name.replace("-", "_").replace(".", "_") + "_backend"

    @property
    def serving(self) -> Tuple[Upstream, ...]:
        """Upstreams receiving traffic; nginx rejects weight=0 servers."""
        return tuple(u for u in self.upstreams if u.weight > 0)

    @property
    def split(self) -> bool:
        return len(self.serving) > 1


def build_proxy_config(
    config,
    options: ProxyOptions,
    blue_weight: int,
    green_weight: int,
) -> ProxyConfig:
    """Build the proxy struct for one (blue, green) split of ``config``'s app."""
    upstreams = tuple(
        Upstream(
            slot=slot,
            host=options.upstream_host_template.format(
                app_name=config.app_name, slot=slot, app_host=config.app_host
            ),
            port=port,
            weight=weight,
        )
        for slot, port, weight in (
            ("blue", config.blue_port, blue_weight),
            ("green", config.green_port, green_weight),
        )
    )
    return ProxyConfig(
        app_name=config.app_name,
        upstreams=upstreams,
        health_path=config.health_endpoint,
        server_name=options.server_name,
        listen_port=options.listen_port,
    )
