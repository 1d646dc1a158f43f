"""
Transcrição de áudio via OpenAI Whisper API.
"""

import logging
import os
import time
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from ..utils.media import audio_upload_name, mime_from_path

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class TranscriptionError(Exception):
    """Falha ao transcrever áudio."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


@dataclass
class TranscriptionResult:
    """Resultado da transcrição."""
    text: str
    language: str
    duration: Optional[float]
    processing_time: float
    model: str


def audio_filename(mime_type: Optional[str]) -> str:
    """Nome de arquivo para envio ('audio.webm', 'audio.wav', ...)."""
    return audio_upload_name("audio", mime_type)


class OpenAITranscriber:
    """
    Cliente da API de transcrição da OpenAI (modelo whisper-1).

    Envia o áudio como multipart (file, model, language) com autenticação
    Bearer e retorna apenas o texto.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "whisper-1",
        language: str = "pt",
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 120,
        max_file_size: int = 25 * 1024 * 1024,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Inicializa o cliente.

        Args:
            api_key: API key (ou usar OPENAI_API_KEY)
            model: Modelo de transcrição
            language: Idioma padrão
            base_url: URL base da API
            timeout: Timeout em segundos
            max_file_size: Tamanho máximo do arquivo em bytes
            transport: Transporte httpx alternativo
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self.model = model
        self.language = language
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_file_size = max_file_size
        self._transport = transport

        self._client: Optional[httpx.Client] = None
        self._lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.Client:
        """Retorna ou cria o client HTTP."""
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.base_url,
                    timeout=float(self.timeout),
                    transport=self._transport,
                )
            return self._client

    def transcribe(
        self,
        data: bytes,
        filename: Optional[str] = None,
        mime_type: Optional[str] = "audio/webm",
        language: Optional[str] = None,
    ) -> TranscriptionResult:
        """
        Transcreve um arquivo de áudio.

        Args:
            data: Conteúdo do arquivo
            filename: Nome do arquivo enviado (derivado do MIME se vazio)
            mime_type: MIME type do áudio
            language: Idioma (padrão do cliente se None)

        Returns:
            Resultado com o texto transcrito

        Raises:
            TranscriptionError: API key ausente, arquivo inválido ou erro da API
        """
        if not self.api_key:
            raise TranscriptionError("API Key do OpenAI não configurada")
        if not data:
            raise TranscriptionError("Áudio não fornecido", status_code=400)
        if len(data) > self.max_file_size:
            raise TranscriptionError(
                f"Arquivo excede o limite de {self.max_file_size // (1024 * 1024)}MB",
                status_code=413,
            )

        language = language or self.language
        filename = filename or audio_filename(mime_type)
        start_time = time.time()

        logger.info(f"Enviando {filename} ({len(data)} bytes) para transcrição")

        try:
            response = self._get_client().post(
                "/audio/transcriptions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": (filename, data, mime_type or "application/octet-stream")},
                data={"model": self.model, "language": language},
            )
        except httpx.HTTPError as e:
            logger.error(f"Erro de conexão com a API de transcrição: {e}")
            raise TranscriptionError(f"Erro de conexão: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Erro Whisper API ({response.status_code}): {response.text}")
            raise TranscriptionError(
                f"Erro Whisper API: {response.status_code}",
                status_code=response.status_code,
                details=response.text,
            )

        payload = response.json()
        text = (payload.get("text") or "").strip()
        processing_time = time.time() - start_time

        logger.info(f"Transcrição concluída em {processing_time:.2f}s: {text[:80]}")

        return TranscriptionResult(
            text=text,
            language=payload.get("language") or language,
            duration=payload.get("duration"),
            processing_time=processing_time,
            model=self.model,
        )

    def transcribe_file(self, path: str, mime_type: Optional[str] = None, language: Optional[str] = None) -> TranscriptionResult:
        """Transcreve um arquivo salvo em disco."""
        file_path = Path(path)
        return self.transcribe(
            file_path.read_bytes(),
            filename=file_path.name,
            mime_type=mime_type or mime_from_path(path),
            language=language,
        )

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def get_transcriber(config) -> OpenAITranscriber:
    """
    Cria o transcritor a partir da configuração.

    Args:
        config: TranscriptionConfig

    Returns:
        Instância do transcritor
    """
    if config.provider != "openai":
        logger.warning(f"Provedor de transcrição '{config.provider}' não suportado, usando openai")

    return OpenAITranscriber(
        api_key=config.api_key or None,
        model=config.model,
        language=config.language,
        base_url=config.base_url,
        timeout=config.timeout,
        max_file_size=config.max_file_size,
    )
