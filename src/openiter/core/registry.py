"""Registry mapping iteration kinds to their state machine classes."""

from typing import Dict, List, Type, Union

from .config import IterationConfig
from .exceptions import ConfigurationError
from .types import IterationKind


class IterationRegistry:
    """Dispatch table of iteration variants."""

    _iterations: Dict[IterationKind, Type] = {}

    @classmethod
    def register_iteration(cls, kind: IterationKind, iteration_class: Type) -> None:
        """Register an iteration class for a kind."""
        cls._iterations[kind] = iteration_class

    @classmethod
    def get_iteration(cls, kind: Union[IterationKind, str]) -> Type:
        """Get iteration class for a kind."""
        try:
            kind = IterationKind(kind)
        except ValueError:
            pass
        if kind not in cls._iterations:
            raise ConfigurationError(f"Unknown iteration kind: {kind}. "
                                     f"Available kinds: {[k.value for k in cls._iterations]}")
        return cls._iterations[kind]

    @classmethod
    def list_available_kinds(cls) -> List[IterationKind]:
        return list(cls._iterations.keys())


def register_iteration(kind: IterationKind):
    """Decorator to register iteration variants."""
    def decorator(cls):
        IterationRegistry.register_iteration(kind, cls)
        return cls
    return decorator


def create_iteration(kind: Union[IterationKind, str], config: IterationConfig):
    """Instantiate the iteration variant registered for ``kind``."""
    return IterationRegistry.get_iteration(kind)(config)
