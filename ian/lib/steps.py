"""
The fixed document pipeline.

Eight steps run in order; each writes exactly one output file. The
changelog agent shares the template registry but is only invoked when
comparing versions.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineStep:
    id: str
    order: int
    name: str
    description: str
    output_file: str


TECH_LEAD_FILE = "01_tech_lead.md"
BUSINESS_ANALYST_FILE = "02_business_analyst.md"
QUESTIONS_FILE = "03_questions.md"
REQUIREMENTS_FILE = "04_requirements_spec.md"
PRODUCT_BACKLOG_FILE = "05_product_backlog.md"
EXEC_SUMMARY_FILE = "06_exec_summary.md"

OUTPUT_FILES = (
    TECH_LEAD_FILE,
    BUSINESS_ANALYST_FILE,
    QUESTIONS_FILE,
    REQUIREMENTS_FILE,
    PRODUCT_BACKLOG_FILE,
    EXEC_SUMMARY_FILE,
)

PIPELINE_STEPS = (
    PipelineStep("tech_lead_initial", 1, "Tech Lead Analysis",
                 "Initial technical assessment and architecture", TECH_LEAD_FILE),
    PipelineStep("business_analyst_initial", 2, "Business Analysis",
                 "Business context, stakeholders and requirements", BUSINESS_ANALYST_FILE),
    PipelineStep("cross_reviewer", 3, "Cross Review",
                 "Questions for the tech lead and the business analyst", QUESTIONS_FILE),
    PipelineStep("tech_lead_update", 4, "Tech Lead Update",
                 "Technical analysis updated with answers", TECH_LEAD_FILE),
    PipelineStep("business_analyst_update", 5, "Business Analyst Update",
                 "Business analysis updated with answers", BUSINESS_ANALYST_FILE),
    PipelineStep("requirements_agent", 6, "Requirements Specification",
                 "Consolidated functional and non-functional requirements", REQUIREMENTS_FILE),
    PipelineStep("product_owner", 7, "Product Backlog",
                 "Epics, milestones and sized user stories", PRODUCT_BACKLOG_FILE),
    PipelineStep("executive_assistant", 8, "Executive Summary",
                 "Leadership summary of scope, risks and decisions", EXEC_SUMMARY_FILE),
)

CHANGELOG_STEP_ID = "changelog_agent"

# Every ID the template registry knows about
TEMPLATE_STEP_IDS = tuple(step.id for step in PIPELINE_STEPS) + (CHANGELOG_STEP_ID,)

# Prompt variable -> output file it is read from
CONTENT_VARIABLES = {
    "TECH_LEAD_CONTENT": TECH_LEAD_FILE,
    "BUSINESS_ANALYST_CONTENT": BUSINESS_ANALYST_FILE,
    "QUESTIONS_CONTENT": QUESTIONS_FILE,
    "REQUIREMENTS_CONTENT": REQUIREMENTS_FILE,
    "PRODUCT_BACKLOG_CONTENT": PRODUCT_BACKLOG_FILE,
}

# Extra variables each step consumes beyond title, description and references
STEP_DEPENDENCIES = {
    "tech_lead_initial": (),
    "business_analyst_initial": ("TECH_LEAD_CONTENT",),
    "cross_reviewer": ("TECH_LEAD_CONTENT", "BUSINESS_ANALYST_CONTENT"),
    "tech_lead_update": ("TECH_LEAD_CONTENT", "BUSINESS_ANALYST_CONTENT", "QUESTIONS_CONTENT"),
    "business_analyst_update": ("BUSINESS_ANALYST_CONTENT", "TECH_LEAD_CONTENT", "QUESTIONS_CONTENT"),
    "requirements_agent": ("TECH_LEAD_CONTENT", "BUSINESS_ANALYST_CONTENT", "QUESTIONS_CONTENT"),
    "product_owner": ("REQUIREMENTS_CONTENT", "TECH_LEAD_CONTENT", "BUSINESS_ANALYST_CONTENT"),
    "executive_assistant": ("REQUIREMENTS_CONTENT", "PRODUCT_BACKLOG_CONTENT"),
}


def get_step(step_id: str) -> PipelineStep:
    for step in PIPELINE_STEPS:
        if step.id == step_id:
            return step
    raise KeyError(f"Unknown pipeline step: {step_id}")
