"""Workflow engine for document and grading jobs.

Contains the orchestration entry points used by the CLI. The business logic
lives in execute_job / execute_grading_job; the Prefect @flow wrappers add
run tracking and desktop notifications around them.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from prefect import flow

from ian.agents.ai_client import AIClient, ModelRouter
from ian.grading.agent import process_grading_job
from ian.grading.models import GradingJob
from ian.lib.config import AppConfig, load_app_config
from ian.lib.license import LicenseService
from ian.lib.models_config import load_models_config
from ian.lib.prompts import TemplateRegistry
from ian.lib.settings import SettingsStore
from ian.lib.types import Job
from ian.notifications import notify_grading_complete, notify_pipeline_complete, notify_pipeline_failed
from ian.runner.pipeline import PipelineObserver, PipelineOrchestrator, PipelineStepError
from ian.storage import StorageBackend, open_storage
from ian.workflow.changelog import generate_changelog

logger = logging.getLogger(__name__)


class JobNotFound(Exception):
    """No job with the given ID in the active storage."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' not found")


@dataclass
class Runtime:
    """Collaborators shared by commands and flows."""
    config: AppConfig
    storage: StorageBackend
    settings: SettingsStore
    templates: TemplateRegistry
    ai_client: AIClient
    license: LicenseService

    async def close(self) -> None:
        await self.ai_client.aclose()
        await self.storage.close()


async def open_runtime(config: AppConfig, ai_client: Optional[AIClient] = None,
                       storage: Optional[StorageBackend] = None) -> Runtime:
    """Open storage and build the collaborators for one CLI invocation."""
    if storage is None:
        storage = await open_storage(config)
    settings = SettingsStore(storage, config.default_model)
    if ai_client is None:
        ai = await settings.ai_settings()
        ai_client = ModelRouter(load_models_config(config.home), timeout=config.ai_timeout,
                                temperature=ai.temperature)
    return Runtime(
        config=config,
        storage=storage,
        settings=settings,
        templates=TemplateRegistry(settings),
        ai_client=ai_client,
        license=LicenseService(settings),
    )


class LoggingObserver(PipelineObserver):
    """Reports pipeline progress through the module logger."""

    def on_progress(self, step_id: str, percent: int) -> None:
        logger.info(f"[{percent:>3}%] {step_id}")

    def on_step_complete(self, step_id: str, output: str) -> None:
        logger.debug(f"{step_id} produced {len(output)} chars")


async def execute_job(job: Job, runtime: Runtime, observer: Optional[PipelineObserver] = None) -> Job:
    """
    Run the full pipeline for a job, persisting after every step, then
    record the changelog for versions after the first.

    Raises:
        PipelineStepError: a step failed; the job is saved as failed
    """
    orchestrator = PipelineOrchestrator(
        job,
        runtime.ai_client,
        runtime.templates,
        settings=runtime.settings,
        observer=observer,
        store=runtime.storage,
    )
    await orchestrator.run_full_pipeline()

    if job.version > 1 and job.version_history:
        job.changelog = await generate_changelog(
            job.version_history[-1], job, runtime.ai_client, runtime.templates, runtime.settings
        )
        await runtime.storage.save_job(job)
        logger.info(f"Changelog recorded for {job.id} v{job.version}")

    return job


async def execute_grading_job(job: GradingJob, runtime: Runtime, refine: bool = True,
                              on_progress=None) -> GradingJob:
    return await process_grading_job(
        job,
        runtime.ai_client,
        settings=runtime.settings,
        on_progress=on_progress,
        refine=refine,
        store=runtime.storage,
    )


def _load_config(home: Optional[str]) -> AppConfig:
    return load_app_config(Path(home) if home else None)


@flow(name="document_pipeline")
async def run_job_flow(job_id: str, home: Optional[str] = None) -> str:
    """Generate all documents for a stored job.

    Returns the final job status.
    """
    config = _load_config(home)
    runtime = await open_runtime(config)
    try:
        job = await runtime.storage.load_job(job_id)
        if job is None:
            raise JobNotFound(job_id)

        try:
            await execute_job(job, runtime, LoggingObserver())
        except PipelineStepError as e:
            if config.notifications:
                notify_pipeline_failed(job_id, e.step)
            raise

        if config.notifications:
            notify_pipeline_complete(job_id, job.title)
        return job.status
    finally:
        await runtime.close()


@flow(name="requirement_grading")
async def run_grading_flow(job_id: str, home: Optional[str] = None, refine: bool = True) -> str:
    """Grade every requirement of a stored grading job.

    Returns the final job status.
    """
    config = _load_config(home)
    runtime = await open_runtime(config)
    try:
        job = await runtime.storage.load_grading_job(job_id)
        if job is None:
            raise JobNotFound(job_id)

        def on_progress(current: int, total: int, name: str) -> None:
            logger.info(f"Grading {current}/{total}: {name}")

        await execute_grading_job(job, runtime, refine=refine, on_progress=on_progress)

        if config.notifications:
            ready = sum(1 for g in job.graded_requirements if g.ready_for_handoff)
            notify_grading_complete(job_id, ready, len(job.graded_requirements))
        return job.status
    finally:
        await runtime.close()
