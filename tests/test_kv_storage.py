"""Tests for ian.storage.kv and ian.storage.factory modules."""

import pytest

from conftest import make_job
from ian.grading.models import GradingJob
from ian.storage import (
    DirectoryStorage,
    KeyValueStorage,
    StorageNotConfigured,
    TrashNotSupported,
    export_jobs,
    open_storage,
)
from ian.storage.kv import JOBS_KEY


class TestKeyValueStorage:
    async def test_round_trip(self, kv_storage):
        job = make_job(outputs={"01_tech_lead.md": "TL", "02_business_analyst.md": ""})
        await kv_storage.save_job(job)
        loaded = await kv_storage.load_job(job.id)
        assert loaded == job

    async def test_upsert(self, kv_storage):
        job = make_job()
        await kv_storage.save_job(job)
        job.status = "completed"
        await kv_storage.save_job(job)

        jobs = await kv_storage.load_all_jobs()
        assert len(jobs) == 1
        assert jobs[0].status == "completed"

    async def test_newest_first(self, kv_storage):
        await kv_storage.save_job(make_job(id="JOB-20250101-090000", created_at="2025-01-01T09:00:00.000Z"))
        await kv_storage.save_job(make_job(id="JOB-20250201-090000", created_at="2025-02-01T09:00:00.000Z"))
        assert [j.id for j in await kv_storage.load_all_jobs()] == ["JOB-20250201-090000", "JOB-20250101-090000"]

    async def test_delete_has_no_trash(self, kv_storage):
        await kv_storage.save_job(make_job())
        assert await kv_storage.delete_job("JOB-20250101-090000") is None
        assert await kv_storage.load_all_jobs() == []

        with pytest.raises(TrashNotSupported):
            await kv_storage.list_trash()
        with pytest.raises(TrashNotSupported):
            await kv_storage.restore_job("anything")

    async def test_delete_unknown_logs(self, kv_storage, caplog):
        await kv_storage.delete_job("JOB-20250101-090000")
        assert "not found" in caplog.text

    async def test_corrupt_collection(self, kv_storage, caplog):
        kv_storage.cache.set(JOBS_KEY, "{broken")
        assert await kv_storage.load_all_jobs() == []
        assert "Corrupt collection" in caplog.text

    async def test_unreadable_entry_skipped(self, kv_storage, caplog):
        await kv_storage.save_job(make_job())
        kv_storage.cache.set(JOBS_KEY, kv_storage.cache.get(JOBS_KEY)[:-1] + ', {"title": "no id"}]')
        assert [j.id for j in await kv_storage.load_all_jobs()] == ["JOB-20250101-090000"]
        assert "Skipping unreadable entry" in caplog.text

    async def test_grading_jobs(self, kv_storage):
        job = GradingJob("GRADE-20250101-090000", "Q1", "", "2025-01-01T09:00:00.000Z", "2025-01-01T09:00:00.000Z")
        await kv_storage.save_grading_job(job)
        assert await kv_storage.load_grading_job(job.id) == job
        await kv_storage.delete_grading_job(job.id)
        assert await kv_storage.load_all_grading_jobs() == []

    async def test_settings(self, kv_storage):
        await kv_storage.set_setting("custom-prompts", {"product_owner": "x"})
        assert await kv_storage.get_setting("custom-prompts") == {"product_owner": "x"}
        await kv_storage.set_setting("custom-prompts", None)
        assert await kv_storage.get_setting("custom-prompts") is None

    def test_needs_location(self):
        with pytest.raises(ValueError):
            KeyValueStorage()


class TestFactory:
    async def test_filesystem_without_root(self, app_config):
        app_config.storage_root = None
        with pytest.raises(StorageNotConfigured, match="ian storage select"):
            await open_storage(app_config)

    async def test_filesystem(self, app_config):
        storage = await open_storage(app_config)
        assert isinstance(storage, DirectoryStorage)
        assert storage.root.path == app_config.storage_root

    async def test_kv(self, app_config):
        app_config.storage_backend = "kv"
        storage = await open_storage(app_config)
        assert isinstance(storage, KeyValueStorage)
        await storage.close()

    async def test_export(self, kv_storage, dir_storage):
        await kv_storage.save_job(make_job(outputs={"01_tech_lead.md": "TL"}))
        await kv_storage.save_grading_job(
            GradingJob("GRADE-20250101-090000", "Q1", "", "2025-01-01T09:00:00.000Z", "2025-01-01T09:00:00.000Z")
        )

        assert await export_jobs(kv_storage, dir_storage) == 2
        assert (await dir_storage.load_job("JOB-20250101-090000")).outputs == {"01_tech_lead.md": "TL"}
        assert await dir_storage.load_grading_job("GRADE-20250101-090000") is not None

    async def test_export_skips_invalid_job(self, kv_storage, dir_storage, caplog):
        """A record the target refuses to write doesn't stop the rest."""
        bad = make_job(id="JOB-20250102-090000", created_at="2025-01-02T09:00:00.000Z",
                       outputs={"notes.md": "scratch"})
        kv_storage._upsert(JOBS_KEY, bad.to_dict())
        await kv_storage.save_job(make_job())

        assert await export_jobs(kv_storage, dir_storage) == 1
        assert [job.id for job in await dir_storage.load_all_jobs()] == ["JOB-20250101-090000"]
        assert "Failed to export job JOB-20250102-090000" in caplog.text
