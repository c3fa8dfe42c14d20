"""MCP tools for longitudinal recovery trends.

These tools read the stored recovery log: per-metric trends, the CRPS
trajectory, the day-by-day risk timeline and week-over-week improvements.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from crp.core.storage.repository import RepositoryError
from crp.domains.recovery.domain_logic.recovery_timeline import personalized_vo2_curve

if TYPE_CHECKING:
    from crp.domains.recovery.domain_logic.recovery_trends import RecoveryTrendAnalyzer

logger = logging.getLogger(__name__)


def register_recovery_trend_tools(
    mcp: FastMCP,
    trend_analyzer: RecoveryTrendAnalyzer,
    *,
    default_surgery_date: str = "",
) -> None:
    """Register longitudinal trend tools on the MCP server.

    Args:
        mcp: The FastMCP server instance.
        trend_analyzer: Analyzer over the stored recovery log.
        default_surgery_date: Configured fallback when the profile has no
            surgery date.
    """

    @mcp.tool
    async def metric_trend(
        ctx: Context,
        metric: str,
        days: int = 90,
        until: str = "",
    ) -> str:
        """Trend of one metric over the stored log.

        Direction is clinically oriented: 'improving' means better, whether
        the metric improves upward (vo2Max) or downward (restingHR).

        Args:
            metric: camelCase metric name, e.g. 'vo2Max', 'restingHR'.
            days: Days to look back from ``until`` (default 90).
            until: Inclusive ISO end date (default today).
        """
        try:
            trend = trend_analyzer.metric_trend(metric, days=days, until=until or None)
        except (ValueError, RepositoryError) as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        trend.setdefault("status", "ok")
        return json.dumps(trend)

    @mcp.tool
    async def crps_trend(
        ctx: Context,
        limit: int = 90,
    ) -> str:
        """Trajectory of the stored Cardiac Recovery Probability Scores.

        Args:
            limit: Most recent days to include (default 90).
        """
        trend = trend_analyzer.crps_trend(limit=limit)
        trend.setdefault("status", "ok")
        return json.dumps(trend)

    @mcp.tool
    async def risk_trend(
        ctx: Context,
        days: int | None = None,
        until: str = "",
    ) -> str:
        """Risk level per stored day, each day evaluated on its own.

        Days without any contributing metric report level null.

        Args:
            days: Days to look back (default: whole log).
            until: Inclusive ISO end date.
        """
        try:
            timeline = trend_analyzer.risk_timeline(days=days, until=until or None)
        except (ValueError, RepositoryError) as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        if not timeline:
            return json.dumps({"status": "no_data", "timeline": []})
        return json.dumps({"status": "ok", "timeline": timeline})

    @mcp.tool
    async def weekly_improvements(
        ctx: Context,
        until: str = "",
    ) -> str:
        """Metrics whose last-7-day average improved on the previous week.

        Args:
            until: Anchor date (default: latest stored day).
        """
        try:
            improvements = trend_analyzer.weekly_improvements(until=until or None)
        except (ValueError, RepositoryError) as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        return json.dumps({
            "status": "ok" if improvements else "no_improvements",
            "improvements": improvements,
        })

    @mcp.tool
    async def expected_recovery_curve(ctx: Context, target_vo2: float = 28.0) -> str:
        """Expected 12-week VO2max curve, anchored on the patient's early VO2max.

        Uses the first VO2max recorded within two weeks of the surgery date
        (stored profile first, then the configured SURGERY_DATE); falls back
        to a typical baseline of 12 ml/kg/min.
        """
        repository = trend_analyzer.repository
        surgery_date = repository.get_profile().get("surgery_date") or default_surgery_date or None
        entries = [(e.entry_date, e.metrics) for e in repository.get_entries()]
        curve = personalized_vo2_curve(entries, surgery_date, target=target_vo2)
        return json.dumps({"status": "ok", "surgery_date": surgery_date, **curve})

    @mcp.tool
    async def recovery_log_summary(ctx: Context) -> str:
        """How much history is stored and the latest score."""
        return json.dumps(trend_analyzer.get_log_summary())
