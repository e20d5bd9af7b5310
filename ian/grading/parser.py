"""
Requirements document parser.

Splits a free-form requirements document into individual requirements.
The "Functional Requirements" section is preferred, then a "Requirements"
section, then the whole document. Within a section, requirements are found
by explicit IDs (REQ-001, FR-12, R7, ...), then by numbered items, and as a
last resort by `---` separators.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path

from .models import Requirement

SECTION_RE = re.compile(r'^(?:#{1,3}\s+(.+)|([A-Z][A-Za-z\s]+):|([A-Z\s]{5,}))$', re.MULTILINE)
REQ_ID_RE = re.compile(
    r'(?:^|\n)(?:Requirement\s+ID|ID|Req\s*ID|Requirement\s*#|Req\s*#)[\s:]*([A-Z]+-?\d+|R?\d+)(?:\s|$)',
    re.IGNORECASE,
)
TITLE_RE = re.compile(r'(?:Title|Name|Requirement)[\s:]+(.+?)(?:\n|$)', re.IGNORECASE)
NEXT_LINE_TITLE_RE = re.compile(r'\n([^\n]+?)(?:\n(?:User Story|Description)|$)')
NUMBERED_RE = re.compile(r'(?:^|\n)(\d+)\.\s+([^\n]+)')
SIMPLE_SPLIT_RE = re.compile(r'\n---+\n|\n(?=\d+\.\s)')

MIN_SIMPLE_BLOCK = 20
MAX_NAME_LENGTH = 100


@dataclass
class Section:
    name: str
    content: str


def find_sections(text: str) -> list[Section]:
    """Split text at headings, `Title:` lines and ALL CAPS lines."""
    matches = list(SECTION_RE.finditer(text))
    sections = []
    for i, match in enumerate(matches):
        name = (match.group(1) or match.group(2) or match.group(3) or "").strip()
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections.append(Section(name=name, content=text[match.start():end]))
    return sections


def _req_id(number: str) -> str:
    return f"REQ-{int(number):03d}"


def extract_requirements(content: str) -> list[Requirement]:
    """Requirements from one section: explicit IDs first, then numbered items."""
    id_matches = list(REQ_ID_RE.finditer(content))
    if id_matches:
        requirements = []
        for i, match in enumerate(id_matches):
            end = id_matches[i + 1].start() if i + 1 < len(id_matches) else len(content)
            block = content[match.start():end].strip()
            # The ID line itself would match TITLE_RE ("Requirement ID: ...")
            body = block.partition("\n")[2]
            title_match = TITLE_RE.search(body) or NEXT_LINE_TITLE_RE.search(block)
            name = title_match.group(1).strip() if title_match else f"Requirement {match.group(1)}"
            requirements.append(Requirement(id=match.group(1), name=name, content=block))
        return requirements

    numbered = list(NUMBERED_RE.finditer(content))
    if len(numbered) > 1:
        requirements = []
        for i, match in enumerate(numbered):
            end = numbered[i + 1].start() if i + 1 < len(numbered) else len(content)
            requirements.append(Requirement(
                id=_req_id(match.group(1)),
                name=match.group(2).strip(),
                content=content[match.start():end].strip(),
            ))
        return requirements

    return []


def parse_simple_format(text: str) -> list[Requirement]:
    """Fallback: one requirement per `---`-separated or numbered block."""
    requirements = []
    for block in SIMPLE_SPLIT_RE.split(text):
        block = block.strip()
        if len(block) < MIN_SIMPLE_BLOCK:
            continue

        heading = re.search(r'^#\s+(.+)', block, re.MULTILINE)
        if heading:
            name = heading.group(1).strip()
        else:
            first = re.match(r'^(?:\d+\.\s*)?(.+?)(?:\n|$)', block)
            name = first.group(1).strip().rstrip(":").strip()[:MAX_NAME_LENGTH] if first else ""

        number = len(requirements) + 1
        requirements.append(Requirement(
            id=_req_id(str(number)),
            name=name or f"Requirement {number}",
            content=block,
        ))
    return requirements


def parse_requirements_document(text: str) -> list[Requirement]:
    """Extract individual requirements from a document. Empty list if none."""
    if not text.strip():
        return []

    sections = find_sections(text)
    for pattern in (r'functional\s+requirements?', r'^requirements?$'):
        section = next((s for s in sections if re.search(pattern, s.name, re.IGNORECASE)), None)
        if section is not None:
            requirements = extract_requirements(section.content)
            if requirements:
                return requirements

    requirements = extract_requirements(text)
    if requirements:
        return requirements

    return parse_simple_format(text)


def load_requirements(filepath: Path) -> list[Requirement]:
    """Load requirements from a .json list of {id, name, content} or a text document.

    Raises:
        ValueError: if a JSON file isn't a list of requirement objects
    """
    text = Path(filepath).read_text(encoding="utf-8")
    if Path(filepath).suffix.lower() != ".json":
        return parse_requirements_document(text)

    try:
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError("expected a list")
        return [Requirement.from_dict(item) for item in data]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid requirements file {filepath}: {e}") from None
