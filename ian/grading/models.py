"""Data model for the requirement grading workflow."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from ian.lib.constants import GRADING_JOB_ID_PREFIX, STATUS_NEW
from ian.lib.types import generate_job_id, now_iso

GRADES = ("A", "B", "C", "D", "F")
READY_GRADES = ("A", "B")

GRADE_LABELS = {
    "A": "Excellent",
    "B": "Good",
    "C": "Fair",
    "D": "Poor",
    "F": "Unacceptable",
}

MAX_STORY_POINTS = 8


@dataclass
class Team:
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(name=data["name"], description=data.get("description", ""))


@dataclass
class Requirement:
    id: str
    name: str
    content: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "Requirement":
        return cls(id=data["id"], name=data.get("name", data["id"]), content=data.get("content", ""))


@dataclass
class GradedRequirement:
    id: str
    name: str
    grade: str  # One of GRADES
    explanation: str
    ready_for_handoff: bool
    assigned_team: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "grade": self.grade,
            "explanation": self.explanation,
            "readyForHandoff": self.ready_for_handoff,
        }
        if self.assigned_team:
            data["assignedTeam"] = self.assigned_team
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GradedRequirement":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            grade=data["grade"],
            explanation=data.get("explanation", ""),
            ready_for_handoff=bool(data.get("readyForHandoff", False)),
            assigned_team=data.get("assignedTeam") or None,
        )


@dataclass
class TeamReadyRequirement:
    """A handoff-ready requirement rewritten as a sprint-sized story."""
    id: str
    name: str
    user_story: str
    acceptance_criteria: list[str]
    story_points: int  # Never above MAX_STORY_POINTS
    needs_split: bool = False
    split_note: Optional[str] = None
    assigned_team: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "userStory": self.user_story,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "storyPoints": self.story_points,
            "needsSplit": self.needs_split,
        }
        if self.split_note:
            data["splitNote"] = self.split_note
        if self.assigned_team:
            data["assignedTeam"] = self.assigned_team
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TeamReadyRequirement":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            user_story=data.get("userStory", ""),
            acceptance_criteria=list(data.get("acceptanceCriteria") or []),
            story_points=int(data.get("storyPoints", 0)),
            needs_split=bool(data.get("needsSplit", False)),
            split_note=data.get("splitNote"),
            assigned_team=data.get("assignedTeam") or None,
        )


@dataclass
class GradingJob:
    id: str
    title: str
    description: str
    created_at: str
    updated_at: str
    requirements: list[Requirement] = field(default_factory=list)
    teams: list[Team] = field(default_factory=list)
    status: str = STATUS_NEW
    graded_requirements: list[GradedRequirement] = field(default_factory=list)
    team_ready_requirements: list[TeamReadyRequirement] = field(default_factory=list)
    report_content: Optional[str] = None

    @classmethod
    def create(cls, title: str, description: str, requirements: Iterable[Requirement],
               teams: Iterable[Team] = (), existing_ids: Iterable[str] = ()) -> "GradingJob":
        ts = now_iso()
        return cls(
            id=generate_job_id(GRADING_JOB_ID_PREFIX, existing_ids),
            title=title,
            description=description,
            created_at=ts,
            updated_at=ts,
            requirements=list(requirements),
            teams=list(teams),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "requirements": [r.to_dict() for r in self.requirements],
            "teams": [t.to_dict() for t in self.teams],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "status": self.status,
            "gradedRequirements": [g.to_dict() for g in self.graded_requirements],
            "teamReadyRequirements": [t.to_dict() for t in self.team_ready_requirements],
        }
        if self.report_content is not None:
            data["reportContent"] = self.report_content
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GradingJob":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", data.get("createdAt", "")),
            requirements=[Requirement.from_dict(r) for r in data.get("requirements") or []],
            teams=[Team.from_dict(t) for t in data.get("teams") or []],
            status=data.get("status", STATUS_NEW),
            graded_requirements=[GradedRequirement.from_dict(g) for g in data.get("gradedRequirements") or []],
            team_ready_requirements=[
                TeamReadyRequirement.from_dict(t) for t in data.get("teamReadyRequirements") or []
            ],
            report_content=data.get("reportContent"),
        )
