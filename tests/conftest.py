"""Shared fixtures: a scripted AI client and storage backends in tmp_path."""

from types import SimpleNamespace

import pytest

from ian.agents.ai_client import AIClient, AIError
from ian.lib.config import AppConfig
from ian.lib.license import LicenseService
from ian.lib.prompts import TemplateRegistry
from ian.lib.settings import SettingsStore
from ian.lib.types import Job
from ian.storage import DirectoryStorage, KeyValueStorage
from ian.workflow.engine import Runtime


class FakeAIClient(AIClient):
    """Records every prompt and answers from a script.

    `responses` is consumed in order; when it runs out, `default` is used.
    An Exception instance in the script is raised instead of returned.
    `fail_on` raises AIError for any prompt containing that text.
    """

    def __init__(self, responses=None, default="Generated content", fail_on=None):
        self.responses = list(responses or [])
        self.default = default
        self.fail_on = fail_on
        self.calls = []

    @property
    def prompts(self):
        return [c[0] for c in self.calls]

    async def call(self, prompt, model, auth_mode=None):
        self.calls.append((prompt, model, auth_mode))
        if self.fail_on and self.fail_on in prompt:
            raise AIError(f"Scripted failure on {self.fail_on!r}")
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = self.default
        if isinstance(response, Exception):
            raise response
        return response


def make_job(**overrides) -> Job:
    fields = dict(
        id="JOB-20250101-090000",
        title="Customer Portal",
        description="Build a self-service customer portal",
        created_at="2025-01-01T09:00:00.000Z",
        updated_at="2025-01-01T09:00:00.000Z",
    )
    fields.update(overrides)
    return Job(**fields)


@pytest.fixture
def fake_ai():
    return FakeAIClient()


@pytest.fixture
async def dir_storage(tmp_path):
    storage = await DirectoryStorage.open(tmp_path / "store")
    yield storage
    await storage.close()


@pytest.fixture
async def kv_storage(tmp_path):
    storage = KeyValueStorage(tmp_path / "kv")
    yield storage
    await storage.close()


@pytest.fixture
def app_config(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return AppConfig(
        home=home,
        storage_backend="filesystem",
        storage_root=tmp_path / "store",
        kv_path=home / "kv",
        default_model="gemini-flash",
        ai_timeout=30,
        notifications=False,
    )


@pytest.fixture
async def runtime(app_config, dir_storage, fake_ai):
    settings = SettingsStore(dir_storage, app_config.default_model)
    return Runtime(
        config=app_config,
        storage=dir_storage,
        settings=settings,
        templates=TemplateRegistry(settings),
        ai_client=fake_ai,
        license=LicenseService(settings),
    )


def args(**kwargs):
    """argparse.Namespace stand-in for command tests."""
    return SimpleNamespace(**kwargs)
