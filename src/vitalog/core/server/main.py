"""vitalog server entry point: ``python -m vitalog.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitalog.core.config.settings import get_settings
from vitalog.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the vitalog MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.vitalog_log_level.upper(), logging.INFO)
    )

    logger = logging.getLogger(__name__)
    if not settings.vitalog_allow_insecure_bind and not _is_loopback_host(settings.vitalog_host):
        raise RuntimeError(
            "Refusing to bind vitalog to a non-loopback host without an auth layer. "
            "Set VITALOG_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting vitalog server on %s:%d",
        settings.vitalog_host,
        settings.vitalog_port,
    )

    mcp = create_app(settings_override=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.vitalog_host,
        port=settings.vitalog_port,
    )


if __name__ == "__main__":
    run()
