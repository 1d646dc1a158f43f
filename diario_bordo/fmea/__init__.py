"""FMEA Vivo: monitor de CEP e aprendizado com dados simulados."""

from .board import FmeaBoard, SIMULATION_MODES, generate_chart_data

__all__ = ["FmeaBoard", "SIMULATION_MODES", "generate_chart_data"]
