"""Captura de áudio e medidor de nível."""

from .capture import AudioBuffer, DeviceUnavailableError, MicrophoneCapture
from .level_meter import (
    AudioLevelSample,
    MeterSettings,
    SmoothedLevelState,
    estimate_level,
    is_clipping,
    update_level_state,
)
from .meter_renderer import MeterBar, MeterFrame, format_meter_line, render_bars
from .session import RecordingSession, SessionState

__all__ = [
    "AudioBuffer",
    "DeviceUnavailableError",
    "MicrophoneCapture",
    "AudioLevelSample",
    "MeterSettings",
    "SmoothedLevelState",
    "estimate_level",
    "is_clipping",
    "update_level_state",
    "MeterBar",
    "MeterFrame",
    "format_meter_line",
    "render_bars",
    "RecordingSession",
    "SessionState",
]
