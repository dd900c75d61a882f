"""
Advisory redaction of dangerous constructs in submitted code.

The container (no network, read-only root, resource ceilings) is the security
boundary. This pass only comments out the obvious cases so a learner sees why
they did nothing. Patterns never cross a newline so line numbers in the
interpreter's tracebacks still match the submitted source.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

from tutor_repl.languages import get_language


# (pattern, replacement) pairs; "{comment}" becomes the language's comment prefix
Rule = Tuple[str, str]

DEFAULT_RULES: Dict[str, List[Rule]] = {
    "python": [
        (r"\bimport[ \t]+os\b", "{comment} import os blocked"),
        (r"\bimport[ \t]+subprocess\b", "{comment} import subprocess blocked"),
        (r"\bfrom[ \t]+os[ \t]+import\b", "{comment} from os import blocked"),
        (r"\bfrom[ \t]+subprocess[ \t]+import\b", "{comment} from subprocess import blocked"),
        (r"\b__import__[ \t]*\(", "{comment} __import__() blocked"),
        (r"\bexec[ \t]*\(", "{comment} exec() blocked"),
        (r"\beval[ \t]*\(", "{comment} eval() blocked"),
    ],
    "javascript": [
        (r"\brequire[ \t]*\([ \t]*['\"](?:node:)?child_process['\"][ \t]*\)", "{comment} require('child_process') blocked"),
        (r"\bimport\b[^\n]*['\"](?:node:)?child_process['\"]", "{comment} import child_process blocked"),
        (r"\beval[ \t]*\(", "{comment} eval() blocked"),
        (r"\bnew[ \t]+Function[ \t]*\(", "{comment} new Function() blocked"),
    ],
    "ruby": [
        (r"\bsystem[ \t]*\(", "{comment} system() blocked"),
        (r"\bexec[ \t]*\(", "{comment} exec() blocked"),
        (r"\beval[ \t]*\(", "{comment} eval() blocked"),
        (r"%x[({\[]", "{comment} %x blocked"),
    ],
}
DEFAULT_RULES["typescript"] = DEFAULT_RULES["javascript"]


class Sanitizer:
    """Applies per-language redaction rules to source code."""

    def __init__(self, rules: Optional[Dict[str, Iterable[Rule]]] = None):
        rules = DEFAULT_RULES if rules is None else rules
        self._rules = {
            language: [(re.compile(pattern), replacement) for pattern, replacement in language_rules]
            for language, language_rules in rules.items()
        }

    def sanitize(self, code: str, language: str = "python") -> str:
        """
        Comment out known-dangerous constructs.

        Args:
            code: Submitted source
            language: Language id, selects the rule set and comment prefix

        Returns:
            Source with the same number of lines and trailing whitespace removed
        """
        lang = get_language(language)
        comment = lang.comment_prefix if lang else "#"

        for pattern, replacement in self._rules.get(language, []):
            code = pattern.sub(replacement.format(comment=comment), code)

        return code.rstrip()
