"""Cardiac Recovery MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from crp.core.config.settings import get_settings
from crp.core.storage.database import DatabaseError, RecoveryDatabase
from crp.core.storage.encryption import EncryptionError, PayloadCipher
from crp.core.storage.repository import RecoveryRepository
from crp.domains.recovery.tools.recovery_scoring_tools import register_recovery_scoring_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Cardiac Recovery"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    repository_override: RecoveryRepository | None = None,
) -> FastMCP:
    """Create and configure the Cardiac Recovery MCP server.

    1. Creates the FastMCP server instance
    2. Initializes the encrypted recovery log when a key is configured
    3. Registers the stateless scoring tools
    4. Registers the daily entry and trend tools when storage is available
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Cardiac rehabilitation recovery server. Scores daily recovery metrics "
            "(Cardiac Recovery Probability Score), stratifies cardiovascular risk, "
            "validates entries against clinical ranges, raises clinical alerts, "
            "and derives heart-rate variability from RR intervals. "
            "Not a diagnostic device: alerts direct the patient to their care team."
        ),
    )

    # --- Encrypted storage (recovery log) ---
    repository: RecoveryRepository | None = None
    if repository_override is not None:
        repository = repository_override
    elif settings.encryption_key:
        try:
            cipher = PayloadCipher(settings.encryption_key)
            database = RecoveryDatabase(settings.db_path)
            database.initialize()
            repository = RecoveryRepository(database, cipher)
            if cipher.key_count > 1:
                # Older keys only need to decrypt until this pass completes.
                repository.reencrypt_all()
            logger.info(
                "Recovery log initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
        except (EncryptionError, DatabaseError) as exc:
            repository = None
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; entries will not be stored")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to enable the recovery log."
        )

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": repository is not None,
        }
        if repository is not None:
            status["entries_stored"] = repository.count_entries()
        return status

    # --- Stateless scoring tools ---
    register_recovery_scoring_tools(
        server,
        profile_source=repository.get_profile if repository is not None else None,
        default_surgery_date=settings.surgery_date,
        hr_window_size=settings.hr_window_size,
        hr_queue_size=settings.hr_queue_size,
    )
    logger.info("Recovery scoring tools registered")

    # --- Daily log and trends (requires storage) ---
    if repository is not None:
        from crp.domains.recovery.domain_logic.recovery_log import RecoveryLog
        from crp.domains.recovery.domain_logic.recovery_trends import RecoveryTrendAnalyzer
        from crp.domains.recovery.tools.daily_entry_tools import register_daily_entry_tools
        from crp.domains.recovery.tools.recovery_trend_tools import register_recovery_trend_tools

        register_daily_entry_tools(server, RecoveryLog(repository))
        logger.info("Daily entry tools registered")

        register_recovery_trend_tools(
            server,
            RecoveryTrendAnalyzer(repository),
            default_surgery_date=settings.surgery_date,
        )
        logger.info("Recovery trend tools registered")

    return server


# Module-level instance for FastMCP discovery ("server": "...app.py:mcp").
# Lazy: only created when this attribute is accessed, not when tests import create_app.
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
