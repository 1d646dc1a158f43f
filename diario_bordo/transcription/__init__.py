"""Módulos de transcrição de áudio."""

from .whisper import OpenAITranscriber, TranscriptionError, TranscriptionResult, get_transcriber

__all__ = ["OpenAITranscriber", "TranscriptionError", "TranscriptionResult", "get_transcriber"]
