"""FastAPI surface for temporal baseline queries and batch updates."""

import json
import math
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Query, Request
from loguru import logger

from signalwatch.baseline.service import BaselineService
from signalwatch.exceptions import PayloadTooLargeError, ValidationError
from signalwatch.services.errors import BaselineValidationError
from signalwatch.settings import global_settings


class BaselineServer:
    """HTTP server exposing the baseline service."""

    def __init__(self, service: BaselineService, max_payload_bytes: int | None = None):
        self.service = service
        self.max_payload_bytes = (
            max_payload_bytes or global_settings.api_max_payload_bytes
        )
        self.app = FastAPI(title="Signalwatch Temporal Baseline")

        # Register routes
        self.app.get("/api/temporal-baseline")(self.check_anomaly)
        self.app.post("/api/temporal-baseline")(self.update_baselines)
        self.app.get("/health")(self.health_check)

    async def check_anomaly(
        self,
        type: Optional[str] = Query(None),
        region: Optional[str] = Query("global"),
        count: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        """Evaluate a live count against its baseline.

        Args:
            type: Baseline type, one of the BaselineType values
            region: Region key, defaults to "global"
            count: Live count to evaluate

        Returns:
            Anomaly verdict or learning state
        """
        try:
            value = float(count) if count is not None else math.nan
        except ValueError:
            value = math.nan

        if not type or math.isnan(value):
            raise ValidationError("Missing or invalid params: type, count required")

        try:
            result = await self.service.evaluate_anomaly(type, region or "global", value)
        except BaselineValidationError as e:
            raise ValidationError(str(e))

        return result.model_dump(mode="json")

    async def update_baselines(self, request: Request) -> dict[str, Any]:
        """Apply a batch of baseline updates.

        Args:
            request: Body of the form {"updates": [{type, region, count}, ...]}

        Returns:
            Number of updates persisted
        """
        content_length = request.headers.get("content-length") or "0"
        try:
            declared = int(content_length)
        except ValueError:
            declared = 0
        if declared > self.max_payload_bytes:
            raise PayloadTooLargeError()

        raw = await request.body()
        if len(raw) > self.max_payload_bytes:
            raise PayloadTooLargeError()

        try:
            body = json.loads(raw or b"null")
        except json.JSONDecodeError:
            raise ValidationError("Body must be valid JSON")

        updates = body.get("updates") if isinstance(body, dict) else None
        if not isinstance(updates, list) or not updates:
            raise ValidationError("Body must have updates array")
        if len(updates) > self.service.max_batch:
            raise ValidationError(
                f"At most {self.service.max_batch} updates per request"
            )

        result = await self.service.batch_update(updates)
        logger.debug(f"Baseline POST: {result.updated}/{len(updates)} updated")
        return {"updated": result.updated}

    async def health_check(self):
        """Health check endpoint."""
        return {"status": "ok", "service": "signalwatch-baseline"}


def create_baseline_server(service: BaselineService) -> FastAPI:
    """Create FastAPI app for the baseline service.

    Args:
        service: BaselineService instance

    Returns:
        FastAPI app
    """
    server = BaselineServer(service)
    return server.app


async def serve_api(
    service: BaselineService, host: str | None = None, port: int | None = None
) -> None:
    """Serve the baseline API on the running event loop until shutdown."""
    config = uvicorn.Config(
        create_baseline_server(service),
        host=host or global_settings.api_host,
        port=port or global_settings.api_port,
        log_level="info",
    )
    logger.info(f"Baseline API listening on {config.host}:{config.port}")
    await uvicorn.Server(config).serve()
