"""Tests for ian.workflow.engine module."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeAIClient, make_job
from ian.agents.ai_client import AIError, ModelRouter
from ian.grading.models import GradingJob, Requirement
from ian.lib.constants import INITIAL_CHANGELOG
from ian.lib.steps import PIPELINE_STEPS
from ian.runner.pipeline import PipelineStepError
from ian.storage import DirectoryStorage
from ian.workflow.engine import (
    JobNotFound,
    execute_grading_job,
    execute_job,
    open_runtime,
    run_grading_flow,
    run_job_flow,
)
from ian.workflow.versioning import create_version


class TestExecuteJob:
    async def test_first_version_has_no_changelog_call(self, runtime):
        job = make_job()
        await runtime.storage.save_job(job)
        await execute_job(job, runtime)

        assert job.status == "completed"
        assert job.changelog is None
        assert len(runtime.ai_client.calls) == len(PIPELINE_STEPS)

    async def test_second_version_records_changelog(self, runtime):
        v1 = make_job(status="completed", outputs={"01_tech_lead.md": "old TL"}, changelog=INITIAL_CHANGELOG)
        job = create_version(v1, "Add mobile support", ["mobile-specs"])
        runtime.ai_client.responses = [f"step-{i}" for i in range(len(PIPELINE_STEPS))] + ["## Version 2 - Mobile"]

        await execute_job(job, runtime)

        assert job.version == 2
        assert job.changelog == "## Version 2 - Mobile"
        changelog_prompt = runtime.ai_client.prompts[-1]
        assert "Add mobile support" in changelog_prompt
        assert "old TL" in changelog_prompt

        saved = await runtime.storage.load_job(job.id)
        assert saved.changelog == "## Version 2 - Mobile"
        assert saved.version_history[0].outputs == {"01_tech_lead.md": "old TL"}

    async def test_previous_version_fed_into_prompts(self, runtime):
        v1 = make_job(status="completed", outputs={"01_tech_lead.md": "TL from v1"})
        job = create_version(v1, "Tighten scope")
        await execute_job(job, runtime)
        first_prompt = runtime.ai_client.prompts[0]
        assert "=== PREVIOUS VERSION ANALYSIS (v1) ===" in first_prompt
        assert "TL from v1" in first_prompt

    async def test_failure_skips_changelog(self, runtime):
        v1 = make_job(status="completed")
        job = create_version(v1, "Retry")
        runtime.ai_client.responses = [AIError("down")]

        with pytest.raises(PipelineStepError):
            await execute_job(job, runtime)
        assert job.changelog is None
        assert len(runtime.ai_client.calls) == 1

    async def test_grading(self, runtime):
        job = GradingJob("GRADE-20250101-090000", "Q1", "", "2025-01-01T09:00:00.000Z", "2025-01-01T09:00:00.000Z",
                         requirements=[Requirement("REQ-001", "Login", "Users log in")])
        runtime.ai_client.responses = ['{"grade": "B", "explanation": "ok", "readyForHandoff": false}']
        await execute_grading_job(job, runtime)
        saved = await runtime.storage.load_grading_job(job.id)
        assert saved.graded_requirements[0].grade == "B"


class TestFlows:
    """The flow bodies, called without the Prefect engine."""

    async def test_missing_job(self, runtime):
        with patch("ian.workflow.engine.open_runtime", AsyncMock(return_value=runtime)), \
             patch("ian.workflow.engine._load_config", return_value=runtime.config):
            with pytest.raises(JobNotFound):
                await run_job_flow.fn("JOB-20990101-000000")

    async def test_run_and_notify(self, runtime):
        runtime.config.notifications = True
        await runtime.storage.save_job(make_job())

        with patch("ian.workflow.engine.open_runtime", AsyncMock(return_value=runtime)), \
             patch("ian.workflow.engine._load_config", return_value=runtime.config), \
             patch("ian.workflow.engine.notify_pipeline_complete") as notify:
            status = await run_job_flow.fn("JOB-20250101-090000")

        assert status == "completed"
        notify.assert_called_once_with("JOB-20250101-090000", "Customer Portal")

    async def test_failure_notifies_and_reraises(self, runtime):
        runtime.config.notifications = True
        runtime.ai_client.responses = ["tl", AIError("quota")]
        await runtime.storage.save_job(make_job())

        with patch("ian.workflow.engine.open_runtime", AsyncMock(return_value=runtime)), \
             patch("ian.workflow.engine._load_config", return_value=runtime.config), \
             patch("ian.workflow.engine.notify_pipeline_failed") as notify:
            with pytest.raises(PipelineStepError):
                await run_job_flow.fn("JOB-20250101-090000")

        notify.assert_called_once_with("JOB-20250101-090000", "business_analyst_initial")

    async def test_grading_flow_missing_job(self, runtime):
        with patch("ian.workflow.engine.open_runtime", AsyncMock(return_value=runtime)), \
             patch("ian.workflow.engine._load_config", return_value=runtime.config):
            with pytest.raises(JobNotFound, match="GRADE-20990101-000000"):
                await run_grading_flow.fn("GRADE-20990101-000000")


class TestOpenRuntime:
    async def test_builds_router(self, app_config):
        runtime = await open_runtime(app_config)
        try:
            assert isinstance(runtime.storage, DirectoryStorage)
            assert isinstance(runtime.ai_client, ModelRouter)
            assert runtime.ai_client.timeout == 30
        finally:
            await runtime.close()

    async def test_injected_collaborators(self, app_config, kv_storage):
        ai = FakeAIClient()
        runtime = await open_runtime(app_config, ai_client=ai, storage=kv_storage)
        assert runtime.ai_client is ai
        assert runtime.storage is kv_storage
        assert runtime.settings.default_model == "gemini-flash"
