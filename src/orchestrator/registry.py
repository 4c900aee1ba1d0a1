"""Tool Registry for the orchestrator.

Maps tool names to capabilities the model may request. Capabilities are
registered once at start-up, after which the registry is sealed and shared
read-only between sessions.
"""

from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_logger
from shared.models import ToolManifestEntry
from shared.schema import EMPTY_OBJECT_SCHEMA, validate_schema

logger = get_logger(__name__)


class DuplicateCapabilityError(ValueError):
    """A capability with the same name is already registered."""


class RegistrySealedError(RuntimeError):
    """The registry no longer accepts registrations."""


class ToolCapability(BaseModel):
    """
    A registered external action.

    ``invoke`` takes the validated argument mapping and returns the result
    text. It may be a plain function or a coroutine function.
    """
    name: str = Field(..., min_length=1)
    description: str
    parameter_schema: dict[str, Any] = Field(
        default_factory=lambda: dict(EMPTY_OBJECT_SCHEMA)
    )
    invoke: Callable[..., Any]

    model_config = ConfigDict(frozen=True)

    def manifest_entry(self) -> ToolManifestEntry:
        return ToolManifestEntry(
            name=self.name,
            description=self.description,
            parameters=self.parameter_schema
        )


class ToolRegistry:
    """
    Central registry for tool capabilities.

    Responsibilities:
    - Register capabilities (never overwriting)
    - Resolve capabilities by name
    - Advertise the tool manifest to the model gateway
    - Validate call arguments against declared schemas
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolCapability] = {}
        self._sealed = False

    def register(self, capability: ToolCapability) -> None:
        """
        Register a capability.

        Args:
            capability: Capability to register

        Raises:
            DuplicateCapabilityError: If the name is already registered
            RegistrySealedError: If the registry has been sealed
        """
        if self._sealed:
            raise RegistrySealedError(
                f"Cannot register '{capability.name}': registry is sealed"
            )

        if capability.name in self._tools:
            raise DuplicateCapabilityError(
                f"Tool '{capability.name}' is already registered"
            )

        self._tools[capability.name] = capability

        logger.info("Tool registered", tool=capability.name)

    def register_many(self, capabilities: Iterable[ToolCapability]) -> None:
        """Register multiple capabilities at once."""
        for capability in capabilities:
            self.register(capability)

    def seal(self) -> None:
        """Freeze the registry; later registrations fail."""
        self._sealed = True
        logger.info("Tool registry sealed", tool_count=len(self._tools))

    @property
    def sealed(self) -> bool:
        return self._sealed

    def resolve(self, name: str) -> Optional[ToolCapability]:
        """
        Resolve a capability by name.

        Args:
            name: Tool name as emitted by the model

        Returns:
            The registered capability, or None if no tool has that name
        """
        return self._tools.get(name)

    def manifest(self) -> list[ToolManifestEntry]:
        """Tool manifest in registration order."""
        return [tool.manifest_entry() for tool in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def validate_arguments(
        self,
        name: str,
        arguments: dict[str, Any]
    ) -> tuple[bool, list[str]]:
        """
        Validate call arguments against a capability's parameter schema.

        Args:
            name: Tool name
            arguments: Arguments to validate

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        tool = self.resolve(name)
        if not tool:
            return False, [f"Tool '{name}' not found"]

        return validate_schema(arguments, tool.parameter_schema)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
