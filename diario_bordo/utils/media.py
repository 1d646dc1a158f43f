"""
Helpers de tipos de mídia e nomes de arquivo de upload.
"""

import time
from pathlib import Path
from typing import Optional

from werkzeug.utils import secure_filename

TIPO_AUDIO_DETALHE = "AUDIO_DETALHE"
TIPO_AUDIO_OBSERVACAO = "AUDIO_OBSERVACAO"
TIPO_FOTO = "FOTO"
MEDIA_TIPOS = (TIPO_AUDIO_DETALHE, TIPO_AUDIO_OBSERVACAO, TIPO_FOTO)

UPLOAD_SUBDIRS = ("audio", "fotos", "outros")

MIME_EXTENSIONS = {
    "audio/webm": ".webm",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/ogg": ".ogg",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

EXTENSION_MIMES = {
    ".webm": "audio/webm",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def ext_from_mime(mime_type: Optional[str], default: str = ".bin") -> str:
    """Extensão de arquivo (com ponto) para um MIME type."""
    if not mime_type:
        return default
    return MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), default)


def mime_from_path(path: str, default: str = "application/octet-stream") -> str:
    """MIME type a partir da extensão do arquivo."""
    return EXTENSION_MIMES.get(Path(path).suffix.lower(), default)


def is_supported_mime(mime_type: Optional[str]) -> bool:
    """Aceita apenas áudio e imagens."""
    return bool(mime_type) and (mime_type.startswith("audio/") or mime_type.startswith("image/"))


def subdir_for_tipo(tipo: Optional[str]) -> str:
    """Subpasta de upload para o tipo de mídia."""
    tipo = tipo or ""
    if "AUDIO" in tipo:
        return "audio"
    if tipo == TIPO_FOTO:
        return "fotos"
    return "outros"


def is_valid_tipo(tipo: Optional[str]) -> bool:
    """
    Tipos conhecidos ou um nome simples, usável como prefixo de arquivo.

    Vazio é aceito (vira 'file'); qualquer separador de caminho não.
    """
    if not tipo or tipo in MEDIA_TIPOS:
        return True
    return secure_filename(tipo) == tipo


def upload_filename(tipo: Optional[str], original_name: Optional[str], mime_type: Optional[str]) -> str:
    """Nome do arquivo salvo: {tipo}_{timestamp_ms}{ext}."""
    if not is_valid_tipo(tipo):
        raise ValueError(f"Tipo de mídia inválido: {tipo}")
    ext = Path(secure_filename(original_name or "")).suffix or ext_from_mime(mime_type)
    timestamp = int(time.time() * 1000)
    return f"{tipo or 'file'}_{timestamp}{ext}"


def transcription_column(tipo: Optional[str]) -> str:
    """Coluna de transcrição para o tipo de áudio ('detalhe' ou 'observacao')."""
    if tipo in ("detalhe", TIPO_AUDIO_DETALHE):
        return "transcricao_detalhe"
    return "transcricao_observacao"


def audio_upload_name(prefix: Optional[str], mime_type: Optional[str], default_ext: str = ".webm") -> str:
    """Nome de arquivo para envio ('audio.webm', 'foto.jpg', ...)."""
    return (prefix or "file").lower() + ext_from_mime(mime_type, default=default_ext)
