"""Módulos utilitários."""

from .config import Config, load_config
from .diario_store import DiarioStore, EventoRecord, MidiaRecord, StoreError

__all__ = [
    "Config",
    "load_config",
    "DiarioStore",
    "EventoRecord",
    "MidiaRecord",
    "StoreError",
]
