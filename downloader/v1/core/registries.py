from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from downloader.config.settings import Settings
    from downloader.v1.jobs.checkers import ItemChecker

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

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Item Checker Registry - builds the availability backend used by workers
class ItemCheckerFactory(Protocol):
    """Protocol for factories that build an item checker from settings."""

    def __call__(self, settings: "Settings") -> "ItemChecker":
        """Create a configured item checker."""
        ...


class ItemCheckerRegistry(Registry[ItemCheckerFactory]):
    """Registry for item checker backends (mock, s3)."""

    def __init__(self):
        super().__init__("ItemChecker")


# Global registry instances
item_checker_registry = ItemCheckerRegistry()
