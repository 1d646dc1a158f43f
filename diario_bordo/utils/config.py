"""
Gerenciamento de configuração do Diário de Bordo.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional
from dataclasses import dataclass, field, fields

import yaml

from ..audio.level_meter import MeterSettings


def expand_env_vars(value: str) -> str:
    """Expande variáveis de ambiente no formato ${VAR}."""
    if not isinstance(value, str):
        return value

    pattern = re.compile(r'\$\{([^}]+)\}')

    def replace(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return pattern.sub(replace, value)


def process_config_values(obj: Any) -> Any:
    """Processa valores de configuração recursivamente."""
    if isinstance(obj, dict):
        return {k: process_config_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [process_config_values(v) for v in obj]
    elif isinstance(obj, str):
        return expand_env_vars(obj)
    return obj


def _known_fields(cls, data: Optional[dict]) -> dict:
    """Filtra apenas as chaves conhecidas pelo dataclass."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


@dataclass
class AudioConfig:
    """Configuração de áudio."""
    device: str = ""
    sample_rate: int = 16000
    channels: int = 1
    chunk_size: int = 1024
    max_duration: int = 120
    meter: MeterSettings = field(default_factory=MeterSettings)


@dataclass
class TranscriptionConfig:
    """Configuração da transcrição (OpenAI Whisper API)."""
    provider: str = "openai"
    api_key: str = ""
    model: str = "whisper-1"
    language: str = "pt"
    base_url: str = "https://api.openai.com/v1"
    timeout: int = 120
    max_file_size: int = 25 * 1024 * 1024   # Limite do Whisper
    max_concurrent: int = 2                 # Transcrições simultâneas no servidor


@dataclass
class DatabaseConfig:
    """Configuração do banco de dados."""
    path: str = "~/.local/share/diario-bordo/diario.db"


@dataclass
class UploadsConfig:
    """Configuração de armazenamento de mídias."""
    path: str = "~/.local/share/diario-bordo/uploads"
    url_base: str = ""                      # Vazio = http://<host>:<port>/uploads
    max_file_size: int = 50 * 1024 * 1024


@dataclass
class WebConfig:
    """Configuração do servidor HTTP e do cliente."""
    host: str = "0.0.0.0"
    port: int = 3001
    api_url: str = "http://localhost:3001"  # Usado pelo cliente do operador
    cors_enabled: bool = True


@dataclass
class OperatorConfig:
    """Identificação do operador no posto."""
    nome: str = "Operador"
    matricula: str = ""


@dataclass
class SystemConfig:
    """Configuração do sistema."""
    log_level: str = "INFO"
    log_file: str = ""
    memory_logs_enabled: bool = True   # Logs em memória expostos em /api/logs
    memory_logs_max_entries: int = 200


@dataclass
class Config:
    """Configuração principal do Diário de Bordo."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    uploads: UploadsConfig = field(default_factory=UploadsConfig)
    web: WebConfig = field(default_factory=WebConfig)
    operator: OperatorConfig = field(default_factory=OperatorConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Config":
        """Cria configuração a partir de dicionário."""
        data = data or {}

        audio_data = dict(data.get("audio") or {})
        meter_data = audio_data.pop("meter", None) or {}
        audio = AudioConfig(
            **_known_fields(AudioConfig, audio_data),
            meter=MeterSettings(**_known_fields(MeterSettings, meter_data)),
        )

        return cls(
            audio=audio,
            transcription=TranscriptionConfig(**_known_fields(TranscriptionConfig, data.get("transcription"))),
            database=DatabaseConfig(**_known_fields(DatabaseConfig, data.get("database"))),
            uploads=UploadsConfig(**_known_fields(UploadsConfig, data.get("uploads"))),
            web=WebConfig(**_known_fields(WebConfig, data.get("web"))),
            operator=OperatorConfig(**_known_fields(OperatorConfig, data.get("operator"))),
            system=SystemConfig(**_known_fields(SystemConfig, data.get("system"))),
        )

    @property
    def database_path(self) -> Path:
        return Path(self.database.path).expanduser()

    @property
    def uploads_path(self) -> Path:
        return Path(self.uploads.path).expanduser()

    @property
    def uploads_url_base(self) -> str:
        if self.uploads.url_base:
            return self.uploads.url_base.rstrip("/")
        return f"http://localhost:{self.web.port}/uploads"


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Carrega configuração do arquivo YAML.

    Args:
        config_path: Caminho do arquivo de configuração.
                    Se None, procura em locais padrão.

    Returns:
        Objeto Config com as configurações carregadas.
    """
    if config_path is None:
        # Procurar em locais padrão
        possible_paths = [
            Path("config/config.yaml"),
            Path("config.yaml"),
            Path.home() / ".config" / "diario-bordo" / "config.yaml",
            Path("/etc/diario-bordo/config.yaml"),
        ]

        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break
        else:
            # Retorna configuração padrão
            return Config()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Arquivo de configuração não encontrado: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    # Processar variáveis de ambiente
    processed_config = process_config_values(raw_config or {})

    return Config.from_dict(processed_config)
