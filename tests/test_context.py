"""Tests for ian.runner.context module."""

import pytest

from conftest import make_job
from ian.lib.constants import NO_REFERENCES, NOT_YET_AVAILABLE
from ian.lib.types import ReferenceFile, VersionSnapshot
from ian.runner.context import (
    NEW_MATERIALS_HEADER,
    PREVIOUS_FOOTER,
    build_variables,
    format_reference_materials,
    format_references,
)


def _snapshot(version=1, outputs=None):
    return VersionSnapshot(
        version=version,
        created_at="2025-01-01T09:00:00.000Z",
        description="Build a self-service customer portal",
        status="completed",
        outputs=outputs or {},
        reference_folders=[],
        reference_files=[],
    )


class TestReferenceMaterials:
    """Tests for format_reference_materials."""

    def test_no_references(self):
        assert format_reference_materials(make_job()) == NO_REFERENCES

    def test_folders_listed(self):
        job = make_job(reference_folders=["specs", "designs"])
        assert format_reference_materials(job) == "Reference 1: specs\nReference 2: designs"

    def test_files_supersede_folders(self):
        job = make_job(
            reference_folders=["specs"],
            reference_files=[
                ReferenceFile("a.md", "docs/a.md", "alpha"),
                ReferenceFile("b.md", "docs/b.md", "beta"),
            ],
        )
        result = format_reference_materials(job)
        assert "Reference 1" not in result
        assert result == (
            "--- File: docs/a.md ---\nalpha\n--- End of a.md ---"
            "\n\n"
            "--- File: docs/b.md ---\nbeta\n--- End of b.md ---"
        )


class TestFormatReferences:
    """Tests for REFERENCE_CONTENT with and without a previous version."""

    def test_version_one_is_materials_only(self):
        job = make_job(reference_folders=["specs"])
        assert format_references(job) == "Reference 1: specs"

    def test_previous_version_first(self):
        job = make_job(
            version=2,
            version_history=[_snapshot(1, {"02_business_analyst.md": "BA v1", "01_tech_lead.md": "TL v1"})],
            reference_folders=["new-folder"],
        )
        result = format_references(job)

        assert result.startswith("=== PREVIOUS VERSION ANALYSIS (v1) ===")
        assert result.index(PREVIOUS_FOOTER) < result.index(NEW_MATERIALS_HEADER)
        assert result.endswith("Reference 1: new-folder")
        # Outputs in file name order
        assert result.index("--- BEGIN 01_tech_lead.md ---") < result.index("--- BEGIN 02_business_analyst.md ---")
        assert "TL v1\n--- END 01_tech_lead.md ---" in result

    def test_previous_version_without_new_materials(self):
        job = make_job(version=2, version_history=[_snapshot(1, {"01_tech_lead.md": "TL v1"})])
        assert format_references(job).endswith(f"{NEW_MATERIALS_HEADER}\n\n{NO_REFERENCES}")


class TestBuildVariables:
    """Tests for per-step variables."""

    def test_first_step_has_base_variables_only(self):
        variables = build_variables(make_job(), "tech_lead_initial")
        assert set(variables) == {"TASK_TITLE", "TASK_DESCRIPTION", "REFERENCE_CONTENT"}

    def test_missing_dependency_placeholder(self):
        variables = build_variables(make_job(), "cross_reviewer")
        assert variables["TECH_LEAD_CONTENT"] == NOT_YET_AVAILABLE
        assert variables["BUSINESS_ANALYST_CONTENT"] == NOT_YET_AVAILABLE

    def test_dependencies_read_from_outputs(self):
        job = make_job(outputs={"04_requirements_spec.md": "REQS", "05_product_backlog.md": "BACKLOG"})
        variables = build_variables(job, "executive_assistant")
        assert variables["REQUIREMENTS_CONTENT"] == "REQS"
        assert variables["PRODUCT_BACKLOG_CONTENT"] == "BACKLOG"
        assert "TECH_LEAD_CONTENT" not in variables

    def test_unknown_step(self):
        with pytest.raises(KeyError):
            build_variables(make_job(), "no_such_step")
