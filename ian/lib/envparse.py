"""
Safe .env file parser.

Parses KEY=value files without shell execution and rejects values that look
like shell injection. Used for ian.env in the IAN home directory.
"""

import re
from pathlib import Path

FORBIDDEN_PATTERNS = [
    r'`',           # backticks
    r'\$\(',        # command substitution
    r'\$\{',        # variable expansion
    r';',           # command chaining
    r'&&',
    r'\|',
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env(text: str) -> dict[str, str]:
    """
    Parse env file content, return dict.

    Raises:
        ValueError: if syntax invalid or forbidden pattern found
    """
    result = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        if '=' not in line:
            raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")

        key, _, value = line.partition('=')
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        value = _unquote(value.strip())

        if not KEY_PATTERN.match(key):
            raise ValueError(f"Line {lineno}: Invalid key '{key}'")

        for pattern in FORBIDDEN_PATTERNS:
            if re.search(pattern, value):
                raise ValueError(f"Line {lineno}: Forbidden pattern in value")

        result[key] = value

    return result


def load_env(filepath: str | Path) -> dict[str, str]:
    """
    Parse env file safely.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")
    return parse_env(path.read_text(encoding="utf-8"))
