"""
Serverless entry point.

The job host invokes ``lambda_handler`` with ``{jobId, userId, fileKey}`` and
expects ``{statusCode, body}`` back, with the body JSON-encoded.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from .config import settings
from .core.logging_config import setup_logging
from .exceptions import HealthStatsError, error_message
from .ingest import IngestionOrchestrator
from .jobs import JobTracker, StorageJobTracker
from .models import InvocationEvent, InvocationResponse
from .storage import StorageInterface, create_storage

logger = logging.getLogger(__name__)


async def process_health_data(
    payload: Dict[str, Any],
    storage: Optional[StorageInterface] = None,
    job_tracker: Optional[JobTracker] = None,
) -> InvocationResponse:
    """
    Run one ingestion job from a raw invocation payload.

    Args:
        payload: Invocation input ({jobId, userId, fileKey})
        storage: Object store; built from settings when omitted
        job_tracker: Job tracker; a storage-backed one when omitted

    Returns:
        InvocationResponse with the status code and response body
    """
    event = InvocationEvent.from_payload(payload or {})
    if storage is None:
        try:
            storage = create_storage(settings)
        except HealthStatsError as e:
            logger.error("Storage could not be initialized: %s", e)
            return InvocationResponse(status_code=500, body={"success": False, "error": error_message(e)})
    if job_tracker is None:
        job_tracker = StorageJobTracker(storage, prefix=settings.jobs_prefix)

    orchestrator = IngestionOrchestrator(storage, job_tracker, settings)
    return await orchestrator.run(event)


def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Synchronous wrapper for serverless runtimes."""
    setup_logging(settings)
    response = asyncio.run(process_health_data(event))
    return {
        "statusCode": response.status_code,
        "body": json.dumps(response.body),
    }
