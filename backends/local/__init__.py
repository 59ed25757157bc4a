"""Backend for locally-hosted model daemons (Ollama, llama.cpp, custom HTTP)."""

from .local_backend import LocalBackend, LocalFormat

__all__ = ["LocalBackend", "LocalFormat"]
