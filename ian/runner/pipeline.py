"""
Pipeline orchestrator.

Runs the eight document steps for one job, strictly in order. Each step's
prompt is built from the outputs of earlier steps, so a step only starts
after the previous step's output has been persisted.

There is no resume: every run starts again at step 1, even though
job.current_step records the last step attempted.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from ian.agents.ai_client import AIClient
from ian.lib.constants import STATUS_NEW
from ian.lib.prompts import TemplateRegistry, fill_template
from ian.lib.settings import AISettings, SettingsStore
from ian.lib.steps import PIPELINE_STEPS, PipelineStep
from ian.lib.types import Job, now_iso
from ian.workflow.fsm import JobFSM
from .context import build_variables

logger = logging.getLogger(__name__)


@dataclass
class PipelineStepError(Exception):
    """A pipeline step failed; the run was aborted."""
    step: str
    message: str

    def __post_init__(self):
        super().__init__(self.step, self.message)

    def __str__(self):
        return f"[{self.step}] {self.message}"


@dataclass
class StepResult:
    step: str
    status: str  # "passed" or "failed"
    duration: float
    error: Optional[str] = None


class PipelineObserver:
    """Receives progress notifications. Return values are never awaited."""

    def on_progress(self, step_id: str, percent: int) -> None:
        pass

    def on_step_complete(self, step_id: str, output: str) -> None:
        pass


class PipelineOrchestrator:
    """Executes the fixed step sequence for one job."""

    def __init__(self, job: Job, ai_client: AIClient, templates: TemplateRegistry,
                 settings: Optional[SettingsStore] = None,
                 observer: Optional[PipelineObserver] = None, store=None):
        """
        Args:
            job: Job to run; updated in place
            ai_client: AI call collaborator
            templates: Template registry (with the user's overrides)
            settings: Source of the model selection; defaults apply if None
            observer: Optional progress observer
            store: Optional storage backend; the job is saved after every step
        """
        self.job = job
        self.ai_client = ai_client
        self.templates = templates
        self.settings = settings
        self.observer = observer
        self.store = store
        self.results: list[StepResult] = []
        self._observer_tasks: set[asyncio.Task] = set()

    def _notify(self, method: str, *args) -> None:
        """Call an observer method without waiting on it."""
        if self.observer is None:
            return
        try:
            outcome = getattr(self.observer, method)(*args)
        except Exception as e:
            logger.warning(f"Observer {method} failed: {e}")
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._observer_tasks.add(task)
            task.add_done_callback(self._observer_done)

    def _observer_done(self, task: asyncio.Task) -> None:
        self._observer_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Observer callback failed: {task.exception()}")

    async def _persist(self) -> None:
        if self.store is not None:
            await self.store.save_job(self.job)

    async def _ai_settings(self) -> AISettings:
        if self.settings is None:
            return AISettings()
        return await self.settings.ai_settings()

    async def run_step(self, step: PipelineStep, ai: AISettings) -> str:
        """Build the prompt for one step and call the model."""
        variables = build_variables(self.job, step.id)
        template = await self.templates.get_template(step.id)
        prompt = fill_template(template, variables)
        return await self.ai_client.call(prompt, ai.model, ai.auth_mode)

    async def run_full_pipeline(self) -> Job:
        """
        Run all steps from the first.

        Returns the job with status "completed".

        Raises:
            PipelineStepError: when a step fails; the job is left "failed"
                with the outputs of earlier steps intact
            InvalidTransition: if the job can't be started
        """
        job = self.job
        ai = await self._ai_settings()
        fsm = JobFSM(job)
        if job.status != STATUS_NEW:
            fsm.fire("reset")
            job.outputs = {}
            job.current_step = None
        fsm.fire("start")
        job.updated_at = now_iso()
        await self._persist()

        steps = sorted(PIPELINE_STEPS, key=lambda s: s.order)
        total = len(steps)
        logger.info(f"Running pipeline for {job.id} v{job.version} with model {ai.model}")

        for i, step in enumerate(steps):
            # Half-up, so 1 of 8 reports 13%
            self._notify("on_progress", step.id, int((i + 1) / total * 100 + 0.5))
            start = time.time()
            job.current_step = step.id
            try:
                output = await self.run_step(step, ai)
                job.outputs[step.output_file] = output
                job.updated_at = now_iso()
                await self._persist()
            except Exception as e:
                duration = time.time() - start
                self.results.append(StepResult(step.id, "failed", duration, str(e)))
                logger.error(f"Step {step.id} failed after {duration:.2f}s: {e}")
                await self._mark_failed(fsm)
                raise PipelineStepError(step.id, str(e)) from e

            duration = time.time() - start
            self.results.append(StepResult(step.id, "passed", duration))
            logger.info(f"Step {step.id} passed ({duration:.2f}s)")
            self._notify("on_step_complete", step.id, output)

        fsm.fire("complete")
        job.updated_at = now_iso()
        await self._persist()
        return job

    async def _mark_failed(self, fsm: JobFSM) -> None:
        fsm.fire("fail")
        self.job.updated_at = now_iso()
        try:
            await self._persist()
        except Exception as e:
            logger.warning(f"Could not save failed status for {self.job.id}: {e}")
