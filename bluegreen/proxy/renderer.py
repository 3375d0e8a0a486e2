"""Render a ProxyConfig through a jinja2 template."""

import logging
from typing import Optional

import jinja2

from .config import ProxyConfig

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "nginx.conf.j2"


class ProxyConfigRenderer:
    """Deterministic rendering: the same ProxyConfig always yields the same text.

    A ``template_dir`` is searched before the packaged templates, so a
    deployment can ship its own ``nginx.conf.j2``.
    """

    def __init__(self, template_dir: Optional[str] = None, template_name: str = DEFAULT_TEMPLATE):
        loaders = []
        if template_dir:
            loaders.append(jinja2.FileSystemLoader(template_dir))
        loaders.append(jinja2.PackageLoader("bluegreen.proxy", "templates"))
        self._env = jinja2.Environment(
            loader=jinja2.ChoiceLoader(loaders),
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._template_name = template_name

    def render(self, proxy: ProxyConfig) -> str:
        template = self._env.get_template(self._template_name)
        rendered = template.render(proxy=proxy)
        logger.debug(
            "Rendered %s for %s (%s)",
            self._template_name,
            proxy.app_name,
            ", ".join(f"{u.slot}={u.weight}" for u in proxy.upstreams),
        )
        return rendered
