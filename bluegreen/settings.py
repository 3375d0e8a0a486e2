"""Centralized settings for the bluegreen deployer.

Uses pydantic-settings to load from environment variables (prefixed BGD_)
with the same defaults as a stock bgd.conf.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Deployer settings loaded from environment variables."""

    # --- Application ---
    app_name: str = "myapp"
    image_repo: str = ""
    state_dir: str = ".bgd"

    # --- Slots ---
    blue_port: int = 8081
    green_port: int = 8082
    app_host: str = "localhost"

    # --- Health gate ---
    health_endpoint: str = "/health"
    health_retries: int = 12
    health_delay: float = 5.0
    health_timeout: float = 5.0

    # --- Traffic shift ---
    traffic_schedule: str = "90:10,50:50,0:100"
    observation_window: float = 10.0
    post_shift_health_check: bool = True
    post_shift_health_retries: int = 3

    # --- Locking ---
    lock_timeout: float = 0.0
    lock_poll_interval: float = 0.5

    # --- Container runtime ---
    compose_file: str = "docker-compose.yml"
    compose_command: str = "docker compose"
    command_timeout: float = 300.0

    # --- Reverse proxy ---
    proxy_config_path: str = "nginx.conf"
    proxy_template_dir: Optional[str] = None
    proxy_reload_command: str = "docker exec {app_name}-nginx nginx -s reload"
    proxy_validate_command: str = ""
    domain_name: str = "localhost"
    nginx_port: int = 80
    upstream_host_template: str = "{app_name}-{slot}-app"

    # --- Plugins ---
    plugins: str = "audit_logging,notifications,db_migrations"

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "console"
    log_to_file: bool = True

    model_config = {
        "env_prefix": "BGD_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def plugin_names(self) -> List[str]:
        """Enabled plugin names, in registration order."""
        return [p.strip() for p in self.plugins.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
