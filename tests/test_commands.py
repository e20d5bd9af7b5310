"""Tests for the ian.commands modules."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import args, make_job
from ian import cli
from ian.cli import build_parser
from ian.commands.grade import cmd_grade_new, cmd_grade_run, cmd_grade_show, load_teams, parse_team
from ian.commands.license import cmd_license_install, cmd_license_status
from ian.commands.list import cmd_list
from ian.commands.new import cmd_new
from ian.commands.run import cmd_run
from ian.commands.settings import cmd_settings_model, cmd_settings_prompt, cmd_settings_show
from ian.commands.show import _resolve_output, cmd_show
from ian.commands.storage import cmd_storage_clear, cmd_storage_select, cmd_storage_status
from ian.commands.trash import cmd_delete, cmd_trash_list, cmd_trash_purge, cmd_trash_restore
from ian.commands.version import cmd_version
from ian.lib.config import StorageSelection, load_storage_selection, save_storage_selection
from ian.runner.pipeline import PipelineStepError
from ian.storage import DirectoryStorage, StorageNotConfigured


def new_args(**overrides):
    fields = dict(title="Customer Portal", description="Self-service portal", description_file=None,
                  ref_folder=None, ref_file=None)
    fields.update(overrides)
    return args(**fields)


def version_args(**overrides):
    fields = dict(id="JOB-20250101-090000", reason="Add mobile", ref_folder=None, ref_file=None, run=False)
    fields.update(overrides)
    return args(**fields)


class TestNew:
    async def test_creates_job(self, runtime, tmp_path, capsys):
        ref = tmp_path / "notes.md"
        ref.write_text("# Notes")
        specs = tmp_path / "specs"
        specs.mkdir()
        (specs / "api.yaml").write_text("openapi: 3.0.0")

        code = await cmd_new(new_args(ref_folder=[str(specs)], ref_file=[str(ref)]), runtime)

        assert code == 0
        jobs = await runtime.storage.load_all_jobs()
        assert len(jobs) == 1
        assert jobs[0].reference_folders == ["specs"]
        assert [(f.path, f.content) for f in jobs[0].reference_files] == [
            ("specs/api.yaml", "openapi: 3.0.0"),
            (str(ref), "# Notes"),
        ]
        assert f"Created job: {jobs[0].id}" in capsys.readouterr().out

    async def test_missing_reference_folder(self, runtime, tmp_path, capsys):
        assert await cmd_new(new_args(ref_folder=[str(tmp_path / "nope")]), runtime) == 2
        assert "Reference folder not found" in capsys.readouterr().out
        assert await runtime.storage.load_all_jobs() == []

    async def test_short_title(self, runtime):
        assert await cmd_new(new_args(title="ab"), runtime) == 2
        assert await runtime.storage.load_all_jobs() == []

    async def test_missing_description(self, runtime):
        assert await cmd_new(new_args(description="  "), runtime) == 2

    async def test_description_file(self, runtime, tmp_path):
        path = tmp_path / "desc.txt"
        path.write_text("From a file\n")
        assert await cmd_new(new_args(description=None, description_file=str(path)), runtime) == 0
        assert (await runtime.storage.load_all_jobs())[0].description == "From a file"

    async def test_description_file_is_utf8(self, runtime, tmp_path):
        path = tmp_path / "desc.txt"
        path.write_bytes("Café ordering for München\n".encode("utf-8"))
        assert await cmd_new(new_args(description=None, description_file=str(path)), runtime) == 0
        assert (await runtime.storage.load_all_jobs())[0].description == "Café ordering for München"

    async def test_missing_reference_file(self, runtime, capsys):
        assert await cmd_new(new_args(ref_file=["/nope/missing.md"]), runtime) == 2
        assert "Reference file not found" in capsys.readouterr().out


class TestRun:
    async def test_runs_flow(self, runtime):
        await runtime.storage.save_job(make_job())
        with patch("ian.commands.run.run_job_flow", AsyncMock(return_value="completed")) as flow:
            assert await cmd_run(args(id="JOB-20250101-090000"), runtime) == 0
        flow.assert_awaited_once_with("JOB-20250101-090000", str(runtime.config.home))

    async def test_unknown_job(self, runtime):
        assert await cmd_run(args(id="JOB-20990101-000000"), runtime) == 1

    async def test_running_needs_force(self, runtime):
        await runtime.storage.save_job(make_job(status="running"))
        with patch("ian.commands.run.run_job_flow", AsyncMock(return_value="completed")) as flow:
            assert await cmd_run(args(id="JOB-20250101-090000", force=False), runtime) == 1
            flow.assert_not_awaited()
            assert await cmd_run(args(id="JOB-20250101-090000", force=True), runtime) == 0

    async def test_step_failure(self, runtime, capsys):
        await runtime.storage.save_job(make_job())
        error = PipelineStepError("cross_reviewer", "quota exceeded")
        with patch("ian.commands.run.run_job_flow", AsyncMock(side_effect=error)):
            assert await cmd_run(args(id="JOB-20250101-090000"), runtime) == 1
        assert "FAILED: [cross_reviewer] quota exceeded" in capsys.readouterr().out


class TestVersion:
    async def test_creates_version(self, runtime, tmp_path):
        await runtime.storage.save_job(make_job(status="completed", outputs={"01_tech_lead.md": "TL"}))
        mobile = tmp_path / "mobile"
        mobile.mkdir()
        (mobile / "screens.md").write_text("Login screen")
        assert await cmd_version(version_args(ref_folder=[str(mobile)]), runtime) == 0

        job = await runtime.storage.load_job("JOB-20250101-090000")
        assert job.version == 2
        assert job.outputs == {}
        assert job.reference_folders == ["mobile"]
        assert [f.path for f in job.reference_files] == ["mobile/screens.md"]
        assert job.version_history[0].outputs == {"01_tech_lead.md": "TL"}

    async def test_reason_required(self, runtime):
        await runtime.storage.save_job(make_job(status="completed"))
        assert await cmd_version(version_args(reason=""), runtime) == 2

    async def test_running_job_rejected(self, runtime, capsys):
        await runtime.storage.save_job(make_job(status="running"))
        assert await cmd_version(version_args(), runtime) == 1
        assert "cannot new_version from running" in capsys.readouterr().out

    async def test_license_limit(self, runtime):
        await runtime.license.install({
            "customerId": "CUST-1",
            "customerName": "Acme",
            "expiryDate": "2099-01-01T00:00:00Z",
            "issuedDate": "2025-01-01T00:00:00Z",
            "allowedFeatures": ["version_management"],
            "licenseType": "trial",
            "maxVersions": 1,
        })
        await runtime.storage.save_job(make_job(status="completed"))
        assert await cmd_version(version_args(), runtime) == 1
        assert (await runtime.storage.load_job("JOB-20250101-090000")).version == 1

    async def test_license_without_feature(self, runtime, capsys):
        await runtime.license.install({
            "customerId": "CUST-1",
            "customerName": "Acme",
            "expiryDate": "2099-01-01T00:00:00Z",
            "issuedDate": "2025-01-01T00:00:00Z",
            "allowedFeatures": ["pdf_export"],
            "licenseType": "trial",
        })
        await runtime.storage.save_job(make_job(status="completed"))
        assert await cmd_version(version_args(), runtime) == 1
        assert "does not include version management" in capsys.readouterr().out

    async def test_run_after_versioning(self, runtime):
        await runtime.storage.save_job(make_job(status="completed"))
        with patch("ian.commands.run.run_job_flow", AsyncMock(return_value="completed")) as flow:
            assert await cmd_version(version_args(run=True), runtime) == 0
        flow.assert_awaited_once()


class TestShowAndList:
    async def test_show_details(self, runtime, capsys):
        await runtime.storage.save_job(make_job(status="failed", current_step="cross_reviewer",
                                                outputs={"01_tech_lead.md": "TL", "02_business_analyst.md": "BA"}))
        assert await cmd_show(args(id="JOB-20250101-090000", output=None, changelog=False), runtime) == 0
        out = capsys.readouterr().out
        assert "[+] 1. " in out
        assert "[x] 3. " in out
        assert "[ ] 4. " in out

    async def test_show_output(self, runtime, capsys):
        await runtime.storage.save_job(make_job(outputs={"04_requirements_spec.md": "# Reqs"}))
        assert await cmd_show(args(id="JOB-20250101-090000", output="04", changelog=False), runtime) == 0
        assert capsys.readouterr().out == "# Reqs\n"

    async def test_show_missing_output(self, runtime):
        await runtime.storage.save_job(make_job())
        assert await cmd_show(args(id="JOB-20250101-090000", output="product_owner", changelog=False), runtime) == 1
        assert await cmd_show(args(id="JOB-20250101-090000", output="99", changelog=False), runtime) == 2

    def test_resolve_output(self):
        assert _resolve_output("06_exec_summary.md") == "06_exec_summary.md"
        assert _resolve_output("03") == "03_questions.md"
        assert _resolve_output("tech_lead_update") == "01_tech_lead.md"
        assert _resolve_output("nope") is None

    async def test_list(self, runtime, capsys):
        await runtime.storage.save_job(make_job(outputs={"01_tech_lead.md": "TL"}))
        assert await cmd_list(args(all=False), runtime) == 0
        out = capsys.readouterr().out
        assert "JOB-20250101-090000" in out
        assert "1/6" in out
        assert "Grading jobs" not in out


class TestTrash:
    async def test_delete_restore_purge(self, runtime, capsys):
        await runtime.storage.save_job(make_job())
        assert await cmd_delete(args(id="JOB-20250101-090000", grading=False), runtime) == 0
        trash_id = (await runtime.storage.list_trash())[0].id

        assert await cmd_trash_list(args(), runtime) == 0
        assert trash_id in capsys.readouterr().out

        assert await cmd_trash_restore(args(trash_id=trash_id), runtime) == 0
        assert await runtime.storage.load_job("JOB-20250101-090000") is not None

        await cmd_delete(args(id="JOB-20250101-090000", grading=False), runtime)
        assert await cmd_trash_purge(args(all=True, trash_id=None), runtime) == 0
        assert await runtime.storage.list_trash() == []

    async def test_delete_unknown(self, runtime):
        assert await cmd_delete(args(id="JOB-20990101-000000", grading=False), runtime) == 1

    async def test_restore_unknown(self, runtime):
        assert await cmd_trash_restore(args(trash_id="JOB-20250101-090000_1"), runtime) == 1

    async def test_purge_needs_target(self, runtime):
        assert await cmd_trash_purge(args(all=False, trash_id=None), runtime) == 2

    async def test_kv_has_no_trash(self, runtime, kv_storage, capsys):
        runtime.storage = kv_storage
        assert await cmd_trash_list(args(), runtime) == 1
        assert "has no trash" in capsys.readouterr().out


class TestGrade:
    def test_parse_team(self):
        team = parse_team("Web: Frontend and design system")
        assert (team.name, team.description) == ("Web", "Frontend and design system")
        assert parse_team("Data").description == ""
        with pytest.raises(ValueError):
            parse_team(": nameless")

    def test_load_teams(self, tmp_path):
        path = tmp_path / "teams.yaml"
        path.write_text("- name: Web\n  description: Frontend\n- name: Data\n")
        assert [t.name for t in load_teams(path)] == ["Web", "Data"]

        path.write_text("name: Web\n")
        with pytest.raises(ValueError, match="expected a list"):
            load_teams(path)

    async def test_new_run_show(self, runtime, tmp_path, capsys):
        doc = tmp_path / "reqs.md"
        doc.write_text("# Requirements\n1. Users can log in\n2. Users can reset passwords\n")

        code = await cmd_grade_new(args(file=str(doc), title="Q1", description=None, teams_file=None,
                                        team=["Web: Frontend", "Web: duplicate"]), runtime)
        assert code == 0
        job = (await runtime.storage.load_all_grading_jobs())[0]
        assert len(job.requirements) == 2
        assert [t.description for t in job.teams] == ["Frontend"]

        with patch("ian.commands.grade.run_grading_flow", AsyncMock(return_value="completed")) as flow:
            assert await cmd_grade_run(args(id=job.id, no_refine=True), runtime) == 0
        flow.assert_awaited_once_with(job.id, str(runtime.config.home), refine=False)

        capsys.readouterr()
        assert await cmd_grade_show(args(id=job.id, json=False), runtime) == 1
        assert await cmd_grade_show(args(id=job.id, json=True), runtime) == 0
        assert json.loads(capsys.readouterr().out.split("\n", 2)[-1])["id"] == job.id

    async def test_new_without_requirements(self, runtime, tmp_path):
        doc = tmp_path / "empty.md"
        doc.write_text("short")
        code = await cmd_grade_new(args(file=str(doc), title="Q1", description=None, teams_file=None, team=None),
                                   runtime)
        assert code == 2


class TestLicenseCommands:
    async def test_status_without_license(self, runtime, capsys):
        assert await cmd_license_status(args(), runtime) == 1
        assert "No license file found" in capsys.readouterr().out

    async def test_install_then_status(self, runtime, tmp_path, capsys):
        path = tmp_path / "license.json"
        path.write_text(json.dumps({
            "customerId": "CUST-1",
            "customerName": "Acme",
            "expiryDate": "2099-01-01T00:00:00Z",
            "issuedDate": "2025-01-01T00:00:00Z",
            "allowedFeatures": ["version_management"],
            "licenseType": "enterprise",
        }))
        assert await cmd_license_install(args(file=str(path)), runtime) == 0
        assert await cmd_license_status(args(), runtime) == 0
        assert "enterprise" in capsys.readouterr().out

    async def test_install_unreadable(self, runtime, tmp_path):
        path = tmp_path / "license.json"
        path.write_text("not json")
        assert await cmd_license_install(args(file=str(path)), runtime) == 2


class TestStorageCommands:
    async def test_select_directory_with_migration(self, app_config, kv_storage, tmp_path, capsys):
        app_config.storage_backend = "kv"
        app_config.kv_path = tmp_path / "kv"
        await kv_storage.save_job(make_job())
        await kv_storage.close()

        target = tmp_path / "shared"
        code = await cmd_storage_select(args(directory=str(target), kv=False, migrate=True), app_config)

        assert code == 0
        assert "Migrated 1 job(s)" in capsys.readouterr().out
        assert load_storage_selection(app_config.home).directory == target.resolve()
        storage = await DirectoryStorage.open(target)
        assert await storage.load_job("JOB-20250101-090000") is not None

    async def test_select_needs_one_target(self, app_config):
        assert await cmd_storage_select(args(directory=None, kv=False, migrate=False), app_config) == 2
        assert await cmd_storage_select(args(directory="x", kv=True, migrate=False), app_config) == 2

    async def test_status_and_clear(self, app_config, capsys):
        save_storage_selection(app_config.home, StorageSelection(mode="kv"))
        assert await cmd_storage_status(args(), app_config) == 0
        assert "Status:    ok" in capsys.readouterr().out

        assert await cmd_storage_clear(args(), app_config) == 0
        assert load_storage_selection(app_config.home) is None

    async def test_status_unconfigured(self, app_config, capsys):
        app_config.storage_root = None
        assert await cmd_storage_status(args(), app_config) == 1
        assert "unavailable" in capsys.readouterr().out


class TestSettingsCommands:
    async def test_model(self, runtime):
        code = await cmd_settings_model(args(model="gpt-4o", temperature=0.2, auth_mode=None), runtime)
        assert code == 0
        ai = await runtime.settings.ai_settings()
        assert (ai.model, ai.temperature) == ("gpt-4o", 0.2)

    async def test_unknown_model(self, runtime):
        assert await cmd_settings_model(args(model="gpt-9", temperature=None, auth_mode=None), runtime) == 2

    async def test_bad_auth_mode(self, runtime):
        assert await cmd_settings_model(args(model="gemini-pro", temperature=None, auth_mode="oauth"), runtime) == 2

    async def test_prompt_override_and_reset(self, runtime, tmp_path, capsys):
        path = tmp_path / "po.md"
        path.write_text("Backlog for {{TASK_TITLE}}")
        prompt_args = dict(step="product_owner", reset=False, default=False)

        assert await cmd_settings_prompt(args(file=str(path), **prompt_args), runtime) == 0
        assert await runtime.templates.get_template("product_owner") == "Backlog for {{TASK_TITLE}}"

        capsys.readouterr()
        await cmd_settings_show(args(), runtime)
        assert any("product_owner" in line and "custom" in line for line in capsys.readouterr().out.splitlines())

        assert await cmd_settings_prompt(args(file=None, step="product_owner", reset=True, default=False), runtime) == 0
        assert await runtime.templates.get_template("product_owner") != "Backlog for {{TASK_TITLE}}"

    async def test_prompt_unknown_step(self, runtime):
        code = await cmd_settings_prompt(args(step="nope", file=None, reset=False, default=False), runtime)
        assert code == 2


class TestParser:
    def test_subcommands_dispatch(self):
        parser = build_parser()
        assert parser.parse_args(["new", "Portal", "-d", "x"]).func is cli.cmd_new
        assert parser.parse_args(["trash"]).func is cli.cmd_trash_list
        assert parser.parse_args(["trash", "purge", "--all"]).func is cli.cmd_trash_purge
        assert parser.parse_args(["grade", "run", "GRADE-1", "--no-refine"]).no_refine is True
        assert parser.parse_args(["storage", "select", "--kv"]).kv is True

    def test_version_requires_reason(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["version", "JOB-20250101-090000"])

    def test_references_repeatable(self):
        parsed = build_parser().parse_args(["new", "Portal", "--ref-folder", "a", "--ref-folder", "b"])
        assert parsed.ref_folder == ["a", "b"]

    def test_storage_errors_become_exit_codes(self, capsys):
        async def failing(command_args, config):
            raise StorageNotConfigured("no folder")

        with patch("ian.cli.load_app_config"):
            assert cli.with_config(failing, args()) == 2
        assert "ERROR: no folder" in capsys.readouterr().out
