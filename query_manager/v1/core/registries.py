from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobHandler(Protocol):
    """Protocol for job handlers that process deferred work.

    ``payload_model`` is an optional pydantic model used to validate payloads
    when a job is enqueued; ``None`` accepts any mapping.
    """

    payload_model: Any

    async def handle(self, payload: dict[str, Any]) -> Any:
        """
        Execute a job payload.

        Args:
            payload: Job-specific parameters

        Returns:
            Result to store with the completed job (must be JSON serialisable)
        """
        ...


class JobRegistry(Registry[JobHandler]):
    """Registry for background job handlers."""

    def __init__(self):
        super().__init__("Job")


# Collaborators the job handlers delegate to
class QueryExecutor(Protocol):
    """Executes a stored query definition with parameters."""

    async def execute(self, query_id: str, parameters: dict[str, Any]) -> Any:
        """Return rows, a count or distinct values for the query."""
        ...


class ReportGenerator(Protocol):
    """Renders a stored report definition to a file."""

    async def generate(
        self, report_id: str, parameters: dict[str, Any]
    ) -> dict[str, Any]:
        """Return ``{"filename", "path", "content_type"}`` for the output."""
        ...


# Global registry instance (singleton)
job_registry = JobRegistry()
