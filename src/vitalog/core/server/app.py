"""vitalog MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitalog.core.audit.logger import AuditLogger
from vitalog.core.config.settings import Settings, get_settings
from vitalog.core.storage.database import HealthDatabase
from vitalog.core.storage.encryption import EncryptionError, FieldEncryptor
from vitalog.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

SERVER_NAME = "vitalog"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    settings_override: Settings | None = None,
    repository_override: HealthRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the vitalog MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Initializes the encrypted storage layer (health data bank)
    3. Wires the analytics over the repository
    4. Registers all tools
    """
    settings = settings_override or get_settings()

    server = FastMCP(
        "vitalog",
        instructions=(
            "Personal health metric tracker. Log weight, pain, sleep, water and "
            "medication doses, then ask for anomalies, trends, correlations, "
            "medication adherence and goal progress. All data stays on this device."
        ),
    )

    # --- Initialize encrypted storage (health data bank) ---
    repository: HealthRepository | None = None
    audit_logger: AuditLogger | None = audit_logger_override
    if repository_override is not None:
        repository = repository_override
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            health_db = HealthDatabase(settings.db_path)
            health_db.initialize()
            repository = HealthRepository(health_db, encryptor)
            if audit_logger is None:
                audit_logger = AuditLogger(health_db)
            logger.info(
                "Health data bank initialized: %s (schema v%d)",
                settings.db_path,
                health_db.get_schema_version(),
            )
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence, no tools can store data")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured, running without persistence. "
            "Set ENCRYPTION_KEY to enable the health data bank."
        )

    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": repository is not None,
            "unit_system": settings.unit_system,
        }
        if repository is not None:
            status["entries_stored"] = repository.count_observations()
        return status

    if repository is not None:
        _register_storage_tools(server, settings, repository, audit_logger)

    return server


def _register_storage_tools(
    server: FastMCP,
    settings: Settings,
    repository: HealthRepository,
    audit_logger: AuditLogger | None,
) -> None:
    from vitalog.domains.health.connectors.export_import import (
        ObservationExporter,
        ObservationImporter,
    )
    from vitalog.domains.health.domain_logic.adherence import MedicationAdherenceEngine
    from vitalog.domains.health.domain_logic.anomaly_detector import AnomalyDetector
    from vitalog.domains.health.domain_logic.context import HealthContextBuilder
    from vitalog.domains.health.domain_logic.correlator import Correlator
    from vitalog.domains.health.domain_logic.goal_evaluator import GoalEvaluator
    from vitalog.domains.health.domain_logic.medications import MedicationManager
    from vitalog.domains.health.domain_logic.metric_log import MetricLog
    from vitalog.domains.health.domain_logic.status import DailyStatus
    from vitalog.domains.health.domain_logic.trend_analyzer import TrendAnalyzer
    from vitalog.domains.health.tools.analytics_tools import register_analytics_tools
    from vitalog.domains.health.tools.data_management_tools import (
        register_data_management_tools,
    )
    from vitalog.domains.health.tools.goal_tools import register_goal_tools
    from vitalog.domains.health.tools.medication_tools import register_medication_tools
    from vitalog.domains.health.tools.metric_tools import register_metric_tools

    # --- Metric entry tools ---
    metric_log = MetricLog(
        repository, aliases=settings.metric_aliases, unit_system=settings.unit_system
    )
    register_metric_tools(server, metric_log, audit_logger)
    logger.info("Metric entry tools registered")

    # --- Analytics tools ---
    anomaly_detector = AnomalyDetector(repository)
    trend_analyzer = TrendAnalyzer(repository)
    status_builder = DailyStatus(
        repository,
        height_cm=settings.height_cm,
        pain_threshold=settings.pain_threshold,
        pain_consecutive_days=settings.pain_consecutive_days,
    )
    goals = GoalEvaluator(repository)
    adherence = MedicationAdherenceEngine(repository)
    register_analytics_tools(
        server,
        repository=repository,
        settings=settings,
        anomaly_detector=anomaly_detector,
        trend_analyzer=trend_analyzer,
        correlator=Correlator(repository),
        status_builder=status_builder,
        context_builder=HealthContextBuilder(
            repository,
            status=status_builder,
            trend_analyzer=trend_analyzer,
            anomaly_detector=anomaly_detector,
            goals=goals,
            adherence=adherence,
        ),
        audit_logger=audit_logger,
    )
    logger.info("Analytics tools registered")

    # --- Medication and goal tools ---
    register_medication_tools(
        server,
        settings=settings,
        medications=MedicationManager(repository),
        adherence=adherence,
        audit_logger=audit_logger,
    )
    register_goal_tools(
        server, settings=settings, goals=goals, audit_logger=audit_logger
    )
    logger.info("Medication and goal tools registered")

    # --- Data management tools ---
    register_data_management_tools(
        server,
        settings=settings,
        repository=repository,
        exporter=ObservationExporter(repository),
        importer=ObservationImporter(repository),
        audit_logger=audit_logger,
    )

    if audit_logger is not None:
        from vitalog.domains.health.tools.audit_tools import register_audit_tools

        register_audit_tools(server, audit_logger)
        logger.info("Audit tools registered")


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
