"""
Backend Factory for easy instantiation and management.

This module provides factory methods for creating backends by type, and a
manager that holds one backend per variant for the Dispatcher.
"""

import asyncio
import logging
from typing import Dict, Any, Optional, List, Union

from core.errors import ConfigurationError
from .base_backend import BaseBackend, BackendType
from .openai import OpenAIBackend
from .anthropic import BedrockClaudeBackend
from .local import LocalBackend

logger = logging.getLogger(__name__)


class BackendFactory:
    """
    Factory class for creating backends.

    Provides a unified interface for instantiating the different backend
    kinds with consistent error handling.
    """

    # Registry of available backends
    BACKENDS = {
        BackendType.OPENAI: OpenAIBackend,
        BackendType.ANTHROPIC: BedrockClaudeBackend,
        BackendType.LOCAL: LocalBackend,
    }

    @classmethod
    def create_backend(
        cls,
        backend_type: Union[str, BackendType],
        variant_id: str,
        model_name: str,
        **kwargs
    ) -> BaseBackend:
        """
        Create a backend instance.

        Args:
            backend_type: "openai", "anthropic", "local" or the enum
            variant_id: Catalog id the backend serves
            model_name: Provider model string
            **kwargs: Backend-specific configuration

        Returns:
            BaseBackend: Configured backend instance

        Raises:
            ConfigurationError: If the backend type is not supported
        """
        backend_type = cls.coerce_type(backend_type, variant_id)
        return cls.BACKENDS[backend_type](variant_id, model_name, **kwargs)

    @classmethod
    def get_available_backends(cls) -> List[str]:
        return [backend.value for backend in cls.BACKENDS]

    @staticmethod
    def coerce_type(backend_type: Union[str, BackendType], variant_id: Optional[str] = None) -> BackendType:
        if isinstance(backend_type, BackendType):
            return backend_type
        try:
            return BackendType(backend_type.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unsupported backend type: {backend_type}. "
                f"Available: {[b.value for b in BackendType]}",
                variant_id,
            )


class BackendManager:
    """
    Holds one backend per variant id.

    Provides utilities for availability checks, statistics and shutdown
    across all managed backends.
    """

    def __init__(self):
        self.backends: Dict[str, BaseBackend] = {}

    def add_backend(self, backend: BaseBackend) -> BaseBackend:
        """Register an already constructed backend under its variant id"""
        if backend.variant_id in self.backends:
            logger.warning("Replacing backend for variant %s", backend.variant_id)
        self.backends[backend.variant_id] = backend
        return backend

    def create_backend(
        self,
        backend_type: Union[str, BackendType],
        variant_id: str,
        model_name: str,
        **kwargs
    ) -> BaseBackend:
        """Create a backend through the factory and register it"""
        return self.add_backend(BackendFactory.create_backend(backend_type, variant_id, model_name, **kwargs))

    def get_backend(self, variant_id: str) -> Optional[BaseBackend]:
        return self.backends.get(variant_id)

    def remove_backend(self, variant_id: str) -> bool:
        """Remove a backend from the manager."""
        return self.backends.pop(variant_id, None) is not None

    def list_backends(self) -> List[str]:
        return list(self.backends.keys())

    async def check_availability_all(self) -> Dict[str, bool]:
        """
        Probe every backend concurrently.

        Returns:
            Dict[str, bool]: Availability per variant id
        """
        names = list(self.backends.keys())
        results = await asyncio.gather(*(self.backends[name].is_available() for name in names))
        return dict(zip(names, results))

    def get_stats_all(self) -> Dict[str, Dict[str, Any]]:
        return {name: backend.get_stats() for name, backend in self.backends.items()}

    def reset_stats_all(self) -> None:
        """Reset statistics for all backends."""
        for backend in self.backends.values():
            backend.reset_stats()

    async def aclose_all(self) -> None:
        """Close every backend's network resources"""
        for backend in self.backends.values():
            await backend.aclose()

    def __contains__(self, variant_id: object) -> bool:
        return variant_id in self.backends

    def __len__(self) -> int:
        return len(self.backends)
