"""Custom Flask CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from flask import Flask, current_app

from .errors import MissionError
from .utils.time import parse_datetime


def register_cli_commands(app: Flask) -> None:
    """Register application specific CLI commands."""

    @app.cli.command("expire-missions")
    @click.option(
        "--now",
        "now_raw",
        default=None,
        help="ISO-8601 timestamp to evaluate expiry against (defaults to the current time).",
    )
    def expire_missions(now_raw: Optional[str]) -> None:
        """Complete every open mission whose validity window has ended."""
        from .services.lifecycle import MissionLifecycleManager

        now = None
        if now_raw:
            now = parse_datetime(now_raw)
            if now is None:
                raise click.BadParameter("must be an ISO-8601 timestamp", param_hint="--now")

        try:
            completed = MissionLifecycleManager().expire_missions(now=now)
        except MissionError as exc:
            current_app.logger.exception("[MISSIONS] Expiry sweep failed")
            raise click.ClickException(exc.message) from exc

        click.echo(f"Expired missions completed: {completed}")

    @app.cli.command("pricing-report")
    @click.argument("business_id")
    def pricing_report(business_id: str) -> None:
        """Print pricing recommendations for a business."""
        from .services.pricing import PricingEngine

        recommendations = PricingEngine().get_business_recommendations(business_id)
        if not recommendations:
            click.echo("No active missions to analyze.")
            return
        for item in recommendations:
            click.echo(
                f"{item.mission_id}: {item.action.value} "
                f"{item.current_points} -> {item.suggested_points} "
                f"(confidence {item.confidence}) {item.expected_impact}"
            )
