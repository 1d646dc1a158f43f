"""
Medidor de nível de áudio (VU meter).

Estimativa de nível por RMS, suavização com subida instantânea e descida
suave, e retenção de pico com decaimento. Todas as funções são puras: o
estado de cada sessão de gravação é um valor explícito passado e retornado.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class MeterSettings:
    """Constantes do medidor de nível."""
    rms_gain: float = 3.0              # RMS de voz fica tipicamente entre 0 e ~0.3
    silence_threshold: float = 0.01    # Abaixo disso é silêncio
    release_coefficient: float = 0.3   # Descida suave (0-1, maior = mais rápida)
    peak_hold_ms: int = 1000           # Tempo de retenção do pico
    peak_decay: float = 0.95           # Decaimento do pico por tick
    clip_threshold: float = 0.95       # Pico bruto acima disso = clipping
    update_interval_ms: int = 50       # ~20 ticks/s para economia de CPU
    analyser_size: int = 2048          # Amostras por snapshot
    bar_count: int = 20


DEFAULT_SETTINGS = MeterSettings()


@dataclass(frozen=True)
class AudioLevelSample:
    """Uma medição (um tick)."""
    rms: float
    peak: float
    timestamp_ms: int


@dataclass(frozen=True)
class SmoothedLevelState:
    """Estado do medidor de uma sessão de gravação."""
    smoothed_level: float = 0.0
    peak_hold: float = 0.0
    peak_decay_start_ms: int = 0


def clamp_unit(value: float) -> float:
    """Limita valor a [0.0, 1.0]."""
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def silent_sample(timestamp_ms: int = 0) -> AudioLevelSample:
    """Amostra neutra de nível zero."""
    return AudioLevelSample(rms=0.0, peak=0.0, timestamp_ms=timestamp_ms)


def estimate_level(
    buffer: Optional[Sequence[float]],
    timestamp_ms: int = 0,
    settings: MeterSettings = DEFAULT_SETTINGS,
) -> AudioLevelSample:
    """
    Calcula RMS e pico de um buffer de amostras normalizadas [-1, 1].

    Args:
        buffer: Amostras no domínio do tempo (None ou vazio = silêncio)
        timestamp_ms: Instante da medição em milissegundos
        settings: Constantes do medidor

    Returns:
        Amostra de nível; nunca levanta exceção para buffer ausente
    """
    if buffer is None:
        return silent_sample(timestamp_ms)

    samples = np.asarray(buffer, dtype=np.float64).ravel()
    if samples.size == 0:
        return silent_sample(timestamp_ms)

    # Amostras não finitas contam como silêncio
    samples = np.nan_to_num(samples, nan=0.0, posinf=0.0, neginf=0.0)

    rms = float(np.sqrt(np.mean(np.square(samples))))
    peak = float(np.max(np.abs(samples)))

    normalized_rms = clamp_unit(rms * settings.rms_gain)
    if normalized_rms < settings.silence_threshold:
        normalized_rms = 0.0

    return AudioLevelSample(
        rms=normalized_rms,
        peak=clamp_unit(peak),
        timestamp_ms=timestamp_ms,
    )


def update_level_state(
    state: SmoothedLevelState,
    sample: AudioLevelSample,
    settings: MeterSettings = DEFAULT_SETTINGS,
) -> SmoothedLevelState:
    """
    Aplica um tick de suavização e retenção de pico.

    Subida instantânea, descida exponencial; o pico fica retido por
    ``peak_hold_ms`` e depois decai geometricamente a cada tick.
    """
    if sample.rms >= state.smoothed_level:
        smoothed = sample.rms
    else:
        alpha = settings.release_coefficient
        smoothed = state.smoothed_level * (1 - alpha) + sample.rms * alpha

    if smoothed < settings.silence_threshold:
        smoothed = 0.0

    peak_hold = state.peak_hold
    decay_start = state.peak_decay_start_ms
    if sample.peak > peak_hold:
        peak_hold = sample.peak
        decay_start = sample.timestamp_ms
    elif sample.timestamp_ms - decay_start > settings.peak_hold_ms:
        peak_hold *= settings.peak_decay

    return replace(
        state,
        smoothed_level=clamp_unit(smoothed),
        peak_hold=clamp_unit(peak_hold),
        peak_decay_start_ms=decay_start,
    )


def is_clipping(
    sample: AudioLevelSample,
    settings: MeterSettings = DEFAULT_SETTINGS,
) -> bool:
    """Clipping é avaliado no pico bruto, não no pico retido."""
    return sample.peak > settings.clip_threshold
