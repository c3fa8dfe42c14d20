"""Server entry point: ``python -m crp.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from crp.core.config.settings import get_settings
from crp.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the recovery MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.crp_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.crp_allow_insecure_bind and not _is_loopback_host(settings.crp_host):
        raise RuntimeError(
            "Refusing to bind the recovery server to a non-loopback host without an auth layer. "
            "Set CRP_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info("Starting Cardiac Recovery server on %s:%d", settings.crp_host, settings.crp_port)

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.crp_host,
        port=settings.crp_port,
    )


if __name__ == "__main__":
    run()
