"""
Renderização do VU meter em barras discretas.

Mapeamento puro: mesma entrada, mesmas barras.
"""

import math
from dataclasses import dataclass
from typing import Tuple

# Cores das barras (verde -> amarelo -> vermelho)
COLOR_SAFE = "#4caf50"
COLOR_WARNING = "#f5a623"
COLOR_DANGER = "#e63946"
COLOR_INACTIVE = "#3a3a3a"

ZONE_COLORS = {
    "safe": COLOR_SAFE,
    "warning": COLOR_WARNING,
    "danger": COLOR_DANGER,
}

DANGER_POSITION = 0.85   # Zona de clipping
WARNING_POSITION = 0.65  # Zona de atenção


@dataclass(frozen=True)
class MeterBar:
    """Uma barra do medidor."""
    index: int
    lit: bool
    is_peak: bool
    zone: str

    @property
    def color(self) -> str:
        if not self.lit and not self.is_peak:
            return COLOR_INACTIVE
        return ZONE_COLORS[self.zone]


@dataclass(frozen=True)
class MeterFrame:
    """Quadro completo do medidor para um tick."""
    bars: Tuple[MeterBar, ...]
    active_bars: int
    peak_bar: int
    is_clipping: bool

    @property
    def bar_count(self) -> int:
        return len(self.bars)

    def to_dict(self) -> dict:
        """Converte para dicionário serializável."""
        return {
            "active_bars": self.active_bars,
            "peak_bar": self.peak_bar,
            "is_clipping": self.is_clipping,
            "bars": [
                {"lit": b.lit, "is_peak": b.is_peak, "zone": b.zone, "color": b.color}
                for b in self.bars
            ],
        }


def round_half_up(value: float) -> int:
    """Arredonda .5 para cima (round() do Python arredonda para o par)."""
    return int(math.floor(value + 0.5))


def bar_zone(index: int, bar_count: int) -> str:
    """Zona de cor pela posição normalizada da barra."""
    position = index / bar_count
    if position > DANGER_POSITION:
        return "danger"
    if position > WARNING_POSITION:
        return "warning"
    return "safe"


def render_bars(
    level: float,
    peak_hold: float,
    is_clipping: bool,
    bar_count: int = 20,
) -> MeterFrame:
    """
    Converte nível suavizado e pico retido em barras.

    Args:
        level: Nível suavizado (0-1)
        peak_hold: Pico retido (0-1)
        is_clipping: Indicador de clipping
        bar_count: Número de barras

    Returns:
        Quadro com as barras acesas e o indicador de pico
    """
    if bar_count <= 0:
        raise ValueError(f"bar_count deve ser positivo: {bar_count}")

    active_bars = round_half_up(level * bar_count)
    peak_bar = round_half_up(peak_hold * bar_count) - 1

    bars = tuple(
        MeterBar(
            index=i,
            lit=i < active_bars,
            is_peak=i == peak_bar,
            zone=bar_zone(i, bar_count),
        )
        for i in range(bar_count)
    )

    return MeterFrame(
        bars=bars,
        active_bars=active_bars,
        peak_bar=peak_bar,
        is_clipping=is_clipping,
    )


def format_meter_line(frame: MeterFrame, label: str = "") -> str:
    """Linha de texto do medidor para terminal."""
    chars = []
    for bar in frame.bars:
        if bar.lit:
            chars.append("█")
        elif bar.is_peak:
            chars.append("|")
        else:
            chars.append("·")

    line = f"BAIXO [{''.join(chars)}] ALTO"
    if label:
        line = f"{label} {line}"
    if frame.is_clipping:
        line += "  ⚠️ VOLUME ALTO"
    return line
