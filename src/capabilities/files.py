"""Read files from the local project directory."""

from pathlib import Path

import aiofiles

from shared.config import FileSettings
from shared.logging import get_logger

logger = get_logger(__name__)


class ProjectFileReader:
    """
    Reads text files confined to a project root.

    Large files are truncated with a warning line so a single result
    cannot flood the conversation.
    """

    def __init__(self, settings: FileSettings | None = None) -> None:
        self.settings = settings or FileSettings()
        self.root = Path(self.settings.project_root).expanduser().resolve()
        self.max_chars = self.settings.max_chars

    def _resolve(self, file_name: str) -> Path | None:
        path = (self.root / file_name).resolve()
        if path != self.root and self.root not in path.parents:
            return None
        return path

    async def read(self, file_name: str) -> str:
        """
        Read a project file.

        Args:
            file_name: Path relative to the project root

        Returns:
            File content, possibly truncated, or an error text
        """
        path = self._resolve(file_name)
        if path is None:
            logger.warning("File outside project root requested", file=file_name)
            return f"ERROR: '{file_name}' is outside the project directory."

        if not path.is_file():
            return f"ERROR: File '{file_name}' not found."

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except UnicodeDecodeError:
            return f"ERROR: File '{file_name}' is not a text file."
        except OSError as e:
            return f"ERROR: Could not read '{file_name}': {e.strerror or e}"

        if len(content) > self.max_chars:
            logger.info("File truncated", file=file_name, length=len(content))
            return (
                content[:self.max_chars]
                + f"\n\n[WARNING] File truncated to the first {self.max_chars} "
                f"of {len(content)} characters."
            )

        return content
