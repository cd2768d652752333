"""Backend factory for creating record store instances."""

from enum import Enum
from typing import Any, Dict, List, Type

from ..config.settings import get_settings
from .base import Backend
from .local_file import FileLayout, LocalFileBackend
from .memory import InMemoryBackend


class BackendType(str, Enum):
    """Supported backend types."""
    LOCAL_FILE = "local_file"
    MEMORY = "memory"


class BackendFactory:
    """Factory for creating backend instances."""

    _backend_classes: Dict[str, Type[Backend]] = {
        BackendType.LOCAL_FILE.value: LocalFileBackend,
        BackendType.MEMORY.value: InMemoryBackend,
    }

    @classmethod
    def create_backend(cls, backend_type: str, **kwargs: Any) -> Backend:
        """Create a backend instance.

        Args:
            backend_type: Registered backend type name
            **kwargs: Constructor arguments for the backend

        Returns:
            Configured backend instance

        Raises:
            ValueError: If the backend type is not registered
        """
        key = backend_type.value if isinstance(backend_type, BackendType) else str(backend_type)
        if key not in cls._backend_classes:
            raise ValueError(f"Unsupported backend type: {backend_type}")

        backend_class = cls._backend_classes[key]

        if backend_class is LocalFileBackend:
            settings = get_settings()
            kwargs.setdefault("base_path", settings.local_store.base_path)
            kwargs.setdefault("name_attempt_limit", settings.local_store.name_attempt_limit)
            extensions = kwargs.pop("extensions", None)
            if extensions and "layout" not in kwargs:
                kwargs["layout"] = FileLayout.from_overrides(extensions)

        return backend_class(**kwargs)

    @classmethod
    def get_supported_types(cls) -> List[str]:
        """Get list of registered backend types."""
        return list(cls._backend_classes.keys())

    @classmethod
    def register_backend(cls, backend_type: str, backend_class: Type[Backend]) -> None:
        """Register a new backend type, such as a device transport.

        Args:
            backend_type: Name the backend is created under
            backend_class: Backend class to register
        """
        if not issubclass(backend_class, Backend):
            raise TypeError(f"{backend_class!r} is not a Backend subclass")
        cls._backend_classes[str(backend_type)] = backend_class
