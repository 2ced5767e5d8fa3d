"""Event handlers for Builds domain events."""

from __future__ import annotations

import structlog

from modules.builds.events import BuildCreated, BuildStepAdvanced
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class BuildCreatedHandler(IEventHandler[BuildCreated]):
    def handle(self, event: BuildCreated) -> None:
        logger.info("build.created_event", build_id=str(event.aggregate_id))


class BuildStepAdvancedHandler(IEventHandler[BuildStepAdvanced]):
    def handle(self, event: BuildStepAdvanced) -> None:
        logger.info(
            "build.step_advanced_event",
            build_id=str(event.aggregate_id),
            previous_step=event.previous_step,
            step=event.step,
        )


build_created_handler = BuildCreatedHandler()
build_step_advanced_handler = BuildStepAdvancedHandler()
