"""
Sessão de gravação com VU meter.

Máquina de estados IDLE -> CAPTURING -> IDLE. Um temporizador de taxa
fixa puxa um snapshot da janela de análise a cada tick, calcula o nível,
atualiza o estado suavizado e entrega um quadro de barras ao callback.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .capture import AudioBuffer, DeviceUnavailableError, MicrophoneCapture
from .level_meter import (
    DEFAULT_SETTINGS,
    MeterSettings,
    SmoothedLevelState,
    estimate_level,
    is_clipping,
    silent_sample,
    update_level_state,
)
from .meter_renderer import MeterFrame, render_bars

logger = logging.getLogger(__name__)

RenderCallback = Callable[[MeterFrame], None]


class SessionState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class RecordingSession:
    """
    Sessão de gravação de um relato.

    Cada sessão é dona exclusiva do seu ``SmoothedLevelState``; o estado é
    zerado no início e descartado no fim.
    """

    def __init__(
        self,
        capture: Optional[MicrophoneCapture] = None,
        on_frame: Optional[RenderCallback] = None,
        settings: MeterSettings = DEFAULT_SETTINGS,
        clock: Callable[[], int] = monotonic_ms,
    ):
        """
        Args:
            capture: Fonte de áudio (precisa de open/close/get_time_domain_data/get_recording)
            on_frame: Callback chamado a cada tick com o quadro do medidor
            settings: Constantes do medidor
            clock: Relógio em milissegundos
        """
        self.capture = capture or MicrophoneCapture(analyser_size=settings.analyser_size)
        self.on_frame = on_frame
        self.settings = settings
        self.clock = clock

        self.state = SessionState.IDLE
        self.level_state = SmoothedLevelState()
        self.last_frame: Optional[MeterFrame] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_ms = 0

    @property
    def is_capturing(self) -> bool:
        return self.state is SessionState.CAPTURING

    @property
    def elapsed_seconds(self) -> int:
        if not self.is_capturing:
            return 0
        return (self.clock() - self._started_ms) // 1000

    def start(self, background: bool = True) -> None:
        """
        Inicia a captura.

        Args:
            background: Iniciar o temporizador de ticks em thread própria

        Raises:
            DeviceUnavailableError: Microfone ausente ou permissão negada
        """
        if self.is_capturing:
            return

        try:
            self.capture.open()
        except DeviceUnavailableError as e:
            logger.error(f"Não foi possível acessar o microfone: {e}")
            self.state = SessionState.IDLE
            raise

        self.level_state = SmoothedLevelState()
        self.last_frame = None
        self._started_ms = self.clock()
        self._stop_event.clear()
        self.state = SessionState.CAPTURING
        logger.info("Gravação iniciada")

        if background:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        interval = self.settings.update_interval_ms / 1000.0
        while not self._stop_event.wait(interval):
            self.tick()

    def _read_snapshot(self) -> Optional[np.ndarray]:
        try:
            return self.capture.get_time_domain_data()
        except (OSError, RuntimeError, ValueError) as e:
            logger.debug(f"Falha ao ler buffer de áudio, tratando como silêncio: {e}")
            return None

    def tick(self) -> Optional[MeterFrame]:
        """Executa um tick de medição e renderização."""
        if not self.is_capturing:
            return None

        now = self.clock()
        snapshot = self._read_snapshot()
        if snapshot is None:
            sample = silent_sample(now)
        else:
            sample = estimate_level(snapshot, now, self.settings)

        self.level_state = update_level_state(self.level_state, sample, self.settings)
        frame = render_bars(
            self.level_state.smoothed_level,
            self.level_state.peak_hold,
            is_clipping(sample, self.settings),
            self.settings.bar_count,
        )
        self.last_frame = frame

        if self.on_frame is not None:
            self.on_frame(frame)
        return frame

    def stop(self) -> Optional[AudioBuffer]:
        """
        Para a captura e libera o dispositivo.

        Returns:
            Áudio gravado, ou None se a sessão não estava capturando
        """
        if not self.is_capturing:
            return None

        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

        try:
            recording = self.capture.get_recording()
        finally:
            self.capture.close()
            self.state = SessionState.IDLE
            self.level_state = SmoothedLevelState()

        logger.info(f"Gravação parada ({recording.duration:.1f}s)")
        return recording

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
