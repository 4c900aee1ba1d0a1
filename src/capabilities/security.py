"""Secret scanning for content the user is about to push."""

from typing import Iterable

from shared.logging import get_logger

logger = get_logger(__name__)


# Case-insensitive substrings that usually mean a credential is present
RISK_PATTERNS = ("api_key", "password", "secret", "token", "password=")


def scan_content(
    file_name: str,
    content: str,
    patterns: Iterable[str] = RISK_PATTERNS
) -> str:
    """
    Scan file content for risk indicators.

    Args:
        file_name: Name reported in the result
        content: Text to scan
        patterns: Substrings to look for

    Returns:
        An alert listing the matched patterns, or a clean result
    """
    lowered = content.lower()
    found = [pattern for pattern in patterns if pattern.lower() in lowered]

    if found:
        logger.info("Potential secrets found", file=file_name, patterns=found)
        return (
            f"[SECURITY ALERT] Found potential risks in {file_name}: "
            f"{', '.join(found)}. Please review before pushing!"
        )

    return f"[CLEAN] No obvious secrets found in {file_name}."
