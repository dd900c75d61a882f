"""
Best-effort snapshot of names declared by a submission.

Values are the source text of the assigned expression, not evaluated values.
The snapshot is shown to learners and never used for correctness.
"""

import re
from typing import Dict

_ASSIGNMENT_PATTERNS = {
    "python": re.compile(r"^([A-Za-z_]\w*)[ \t]*(?::[^=\n]+)?=(?!=)[ \t]*(.+?)[ \t]*$", re.MULTILINE),
    "ruby": re.compile(r"^([a-z_]\w*)[ \t]*=(?!=)[ \t]*(.+?)[ \t]*$", re.MULTILINE),
    "javascript": re.compile(
        r"^(?:let|const|var)[ \t]+([A-Za-z_$][\w$]*)[ \t]*=(?!=)[ \t]*(.+?)[ \t]*;?[ \t]*$", re.MULTILINE
    ),
    "typescript": re.compile(
        r"^(?:let|const|var)[ \t]+([A-Za-z_$][\w$]*)[ \t]*(?::[^=\n]+)?=(?!=)[ \t]*(.+?)[ \t]*;?[ \t]*$",
        re.MULTILINE,
    ),
}


def extract_variables(language: str, code: str) -> Dict[str, str]:
    """Map each top-level name assigned in ``code`` to its expression text."""
    pattern = _ASSIGNMENT_PATTERNS.get(language)
    if pattern is None:
        return {}
    return {name: value for name, value in pattern.findall(code)}
