"""Reverse proxy configuration and reload.

Typed proxy configuration, deterministic jinja2 rendering and an nginx
collaborator that applies a rendered file with a reload.
"""

from bluegreen.proxy.config import ProxyConfig, ProxyOptions, Upstream, build_proxy_config
from bluegreen.proxy.nginx import NginxProxy, ReverseProxy
from bluegreen.proxy.renderer import DEFAULT_TEMPLATE, ProxyConfigRenderer

__all__ = [
    "DEFAULT_TEMPLATE",
    "NginxProxy",
    "ProxyConfig",
    "ProxyConfigRenderer",
    "ProxyOptions",
    "ReverseProxy",
    "Upstream",
    "build_proxy_config",
]
