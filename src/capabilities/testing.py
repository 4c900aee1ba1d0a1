"""Heuristic unit-test suggestions for a code snippet."""

from typing import NamedTuple


CLEAN_REVIEW = (
    "Flux reviewed the code and it looks solid, "
    "but manual unit tests are always recommended!"
)


class ReviewRule(NamedTuple):
    """Suggest ``advice`` when a trigger is present and no guard is."""
    triggers: tuple[str, ...]
    advice: str
    guards: tuple[str, ...] = ()


RULES = (
    ReviewRule(
        triggers=("class", "void", "Task", "def "),
        guards=("== null", "is null", "is None", "== None"),
        advice="Missing Null Checks: Ensure you test how this code handles null inputs."
    ),
    ReviewRule(
        triggers=("for", "foreach", ".Select", "while"),
        advice="Collection Edge Cases: Test with an empty list and a list with only one item."
    ),
    ReviewRule(
        triggers=("string", "str"),
        advice="String Inputs: Test with an empty string and very long strings."
    ),
)


def analyze_code_for_tests(code_snippet: str) -> str:
    """
    Suggest unit tests for a code snippet.

    Args:
        code_snippet: Source code to review

    Returns:
        A bullet list of suggestions, or a clean review
    """
    suggestions = [
        rule.advice
        for rule in RULES
        if any(t in code_snippet for t in rule.triggers)
        and not any(g in code_snippet for g in rule.guards)
    ]

    if not suggestions:
        return CLEAN_REVIEW

    return "### Unit Test Recommendations:\n" + "\n".join(f"- {s}" for s in suggestions)
