"""
Captura de áudio do microfone para gravação dos relatos do operador.

Mantém duas visões do sinal captado:
- janela de análise com as últimas amostras normalizadas (para o VU meter)
- PCM 16-bit acumulado (o áudio gravado)
"""

import io
import threading
import time
import wave
from dataclasses import dataclass
from typing import List, Optional
import logging

import numpy as np

logger = logging.getLogger(__name__)

INT16_SCALE = 32768.0


class DeviceUnavailableError(RuntimeError):
    """Microfone ausente ou acesso negado."""


@dataclass
class AudioBuffer:
    """Áudio gravado com metadados."""
    data: np.ndarray
    sample_rate: int
    channels: int
    duration: float
    timestamp: float

    @property
    def duration_seconds(self) -> int:
        """Duração inteira em segundos (como registrado na mídia)."""
        return int(self.duration)

    def to_wav_bytes(self) -> bytes:
        """Converte para bytes WAV."""
        buffer = io.BytesIO()
        with wave.open(buffer, 'wb') as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(2)  # 16-bit
            wav.setframerate(self.sample_rate)
            wav.writeframes(self.data.astype(np.int16).tobytes())
        return buffer.getvalue()


class MicrophoneCapture:
    """
    Captura do microfone via PyAudio.

    O stream roda em modo callback; o callback apenas copia os dados
    para a janela de análise e para a lista de frames gravados.
    """

    def __init__(
        self,
        device: str = "",
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_size: int = 1024,
        analyser_size: int = 2048,
        max_duration: int = 120,
    ):
        """
        Inicializa captura de áudio.

        Args:
            device: Nome (parcial) do dispositivo (vazio = padrão do sistema)
            sample_rate: Taxa de amostragem (16000 ideal para Whisper)
            channels: Número de canais (1 = mono)
            chunk_size: Tamanho do chunk em frames
            analyser_size: Amostras mantidas na janela de análise
            max_duration: Duração máxima de gravação em segundos
        """
        self.device = device
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.analyser_size = analyser_size
        self.max_duration = max_duration

        self._stream = None
        self._audio = None
        self._device_index: Optional[int] = None
        self._frames: List[np.ndarray] = []
        self._recorded_samples = 0
        self._window = np.zeros(analyser_size, dtype=np.float32)
        self._lock = threading.Lock()
        self._started_at: Optional[float] = None

        # Importar PyAudio sob demanda
        self._pyaudio = None

    def _get_pyaudio(self):
        """Importa e retorna PyAudio."""
        if self._pyaudio is None:
            try:
                import pyaudio
                self._pyaudio = pyaudio
            except ImportError:
                raise DeviceUnavailableError(
                    "PyAudio não instalado. Execute: pip install pyaudio"
                )
        return self._pyaudio

    def _find_device(self, audio) -> int:
        """
        Encontra o dispositivo de entrada.

        Raises:
            DeviceUnavailableError: Se nenhum microfone disponível
        """
        if self.device:
            for i in range(audio.get_device_count()):
                info = audio.get_device_info_by_index(i)
                if self.device.lower() in info.get("name", "").lower():
                    if info.get("maxInputChannels", 0) > 0:
                        logger.info(f"Dispositivo encontrado: {info['name']}")
                        return i
            logger.warning(f"Dispositivo '{self.device}' não encontrado, usando padrão")

        try:
            default = audio.get_default_input_device_info()
        except (IOError, OSError) as e:
            raise DeviceUnavailableError(f"Nenhum microfone disponível: {e}")

        logger.info(f"Usando dispositivo padrão: {default['name']}")
        return default["index"]

    def _audio_callback(self, in_data, frame_count, time_info, status):
        """Callback do stream de áudio."""
        if status:
            logger.debug(f"Status do stream: {status}")
        self.feed(in_data)
        return (None, self._get_pyaudio().paContinue)

    def feed(self, chunk: bytes) -> None:
        """Recebe um chunk PCM 16-bit do stream."""
        pcm = np.frombuffer(chunk, dtype=np.int16)
        if pcm.size == 0:
            return

        max_samples = self.max_duration * self.sample_rate * self.channels
        normalized = pcm.astype(np.float32) / INT16_SCALE

        with self._lock:
            if self._recorded_samples < max_samples:
                self._frames.append(pcm.copy())
                self._recorded_samples += pcm.size

            if normalized.size >= self.analyser_size:
                self._window = normalized[-self.analyser_size:].copy()
            else:
                self._window = np.concatenate(
                    [self._window[normalized.size:], normalized]
                )

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """
        Abre o stream do microfone.

        Raises:
            DeviceUnavailableError: Microfone ausente ou permissão negada
        """
        if self._stream is not None:
            return

        pyaudio = self._get_pyaudio()
        self._audio = pyaudio.PyAudio()

        try:
            self._device_index = self._find_device(self._audio)
            self._stream = self._audio.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self._device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=self._audio_callback,
            )
        except DeviceUnavailableError:
            self.close()
            raise
        except (IOError, OSError, ValueError) as e:
            self.close()
            raise DeviceUnavailableError(f"Erro ao abrir microfone: {e}")

        self.reset()
        self._started_at = time.time()
        self._stream.start_stream()
        logger.info("Stream de áudio aberto")

    def close(self) -> None:
        """Fecha o stream e libera o dispositivo."""
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            finally:
                self._stream = None

        if self._audio is not None:
            self._audio.terminate()
            self._audio = None

        logger.info("Stream de áudio fechado")

    def reset(self) -> None:
        """Descarta áudio gravado e zera a janela de análise."""
        with self._lock:
            self._frames = []
            self._recorded_samples = 0
            self._window = np.zeros(self.analyser_size, dtype=np.float32)

    def get_time_domain_data(self) -> np.ndarray:
        """Snapshot da janela de análise (float32 em [-1, 1])."""
        with self._lock:
            return self._window.copy()

    def get_recording(self) -> AudioBuffer:
        """Retorna o áudio acumulado desde a abertura."""
        with self._lock:
            if self._frames:
                data = np.concatenate(self._frames)
            else:
                data = np.array([], dtype=np.int16)

        return AudioBuffer(
            data=data,
            sample_rate=self.sample_rate,
            channels=self.channels,
            duration=len(data) / (self.sample_rate * self.channels),
            timestamp=self._started_at or time.time(),
        )

    def list_devices(self) -> list[dict]:
        """Lista todos os dispositivos de entrada disponíveis."""
        pyaudio = self._get_pyaudio()
        audio = pyaudio.PyAudio()

        devices = []
        try:
            for i in range(audio.get_device_count()):
                info = audio.get_device_info_by_index(i)
                if info.get("maxInputChannels", 0) > 0:
                    devices.append({
                        "index": i,
                        "name": info["name"],
                        "channels": info["maxInputChannels"],
                        "sample_rate": int(info["defaultSampleRate"]),
                    })
        finally:
            audio.terminate()

        return devices

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
