"""Temporal worker service for order processing.

This worker:
- Connects to the Temporal server configured in settings
- Dynamically discovers and registers all workflows and activities
- Runs one worker per task queue
- Handles concurrent execution with configured limits

Run with ``python -m order_intake.temporal.worker``.
"""

import asyncio
from typing import List

from temporalio.client import Client
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from order_intake.core.config import settings

# Trigger discovery of all components
from order_intake.temporal.core.discovery import discover_all
discover_all()

from order_intake.temporal.core.workflow_registry import WorkflowRegistry
from order_intake.temporal.core.activity_registry import ActivityRegistry
from order_intake.utils.logging import get_logger

logger = get_logger(__name__)


async def connect_with_retries(max_retries: int = 5, retry_delay: int = 5) -> Client:
    for attempt in range(max_retries):
        try:
            logger.info(f"Connecting to Temporal server at {settings.temporal_host}:{settings.temporal_port} (Attempt {attempt + 1}/{max_retries})")
            return await Client.connect(
                target_host=f"{settings.temporal_host}:{settings.temporal_port}",
                namespace=settings.temporal_namespace,
            )
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise


def build_workers(client: Client) -> List[Worker]:
    """One worker per task queue, each with every registered activity."""
    queues = WorkflowRegistry.by_task_queue(settings.temporal_task_queue)
    all_activities = ActivityRegistry.get_all_activities()

    for queue_name, workflows in queues.items():
        logger.info(f"Queue '{queue_name}': {[wf.__name__ for wf in workflows]}")
    logger.info(f"Registered {len(all_activities)} activities")

    return [
        Worker(
            client,
            task_queue=queue_name,
            workflows=workflows,
            activities=list(all_activities.values()),
            max_concurrent_activities=settings.temporal.max_concurrent_activities,
            max_concurrent_workflow_tasks=settings.temporal.max_concurrent_workflow_tasks,
            workflow_runner=SandboxedWorkflowRunner(
                restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
            ),
        )
        for queue_name, workflows in queues.items()
    ]


async def run_workers():
    """Connect to Temporal and run workers."""
    client = await connect_with_retries()
    logger.info("Successfully connected to Temporal server")

    workers = build_workers(client)

    logger.info("=" * 60)
    logger.info("Temporal Workers Initialized Successfully")
    logger.info("=" * 60)
    logger.info(f"Connected to: {settings.temporal_host}:{settings.temporal_port}")
    logger.info(f"Workers: {len(workers)}")
    logger.info("=" * 60)
    logger.info("Workers are now polling for tasks...")
    logger.info("Press Ctrl+C to stop")
    logger.info("=" * 60)

    await asyncio.gather(*(worker.run() for worker in workers))


if __name__ == "__main__":
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        logger.info("\nWorkers stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
