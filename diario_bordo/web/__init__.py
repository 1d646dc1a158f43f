"""API HTTP do Diário de Bordo."""

from .server import create_app, run_standalone

__all__ = ["create_app", "run_standalone"]
