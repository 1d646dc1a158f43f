"""
Fluxo de registro do operador.
Integra consulta de refugo, gravação dos áudios, upload, transcrição e finalização.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .audio.capture import AudioBuffer
from .client import DiarioApiClient
from .utils.config import OperatorConfig
from .utils.media import TIPO_AUDIO_DETALHE, TIPO_AUDIO_OBSERVACAO, TIPO_FOTO, mime_from_path

logger = logging.getLogger(__name__)

QUICK_OBSERVACAO = "Não vi nada de diferente"

# Campos do refugo copiados para o evento
REFUGO_EVENTO_FIELDS = (
    "etiqueta", "cod_defeito", "desc_defeito", "cod_produto",
    "op", "dt_refugo", "centro_custo",
)


class RegistroError(Exception):
    """Falha ao salvar o registro do diário."""


@dataclass
class MediaFile:
    """Arquivo de mídia pronto para envio."""
    conteudo: bytes
    mime_type: str
    duracao_seg: Optional[int] = None
    nome: Optional[str] = None

    @classmethod
    def from_audio(cls, audio: AudioBuffer) -> "MediaFile":
        """Áudio gravado pelo microfone (WAV)."""
        return cls(
            conteudo=audio.to_wav_bytes(),
            mime_type="audio/wav",
            duracao_seg=audio.duration_seconds,
        )

    @classmethod
    def from_path(cls, path: str) -> "MediaFile":
        file_path = Path(path)
        return cls(
            conteudo=file_path.read_bytes(),
            mime_type=mime_from_path(path),
            nome=file_path.name,
        )


@dataclass
class RegistroResult:
    """Resultado do registro salvo."""
    evento_id: str
    etiqueta: Optional[str]
    transcricoes: Dict[str, str] = field(default_factory=dict)
    uploads: int = 0

    def to_dict(self) -> dict:
        return {
            "evento_id": self.evento_id,
            "etiqueta": self.etiqueta,
            "transcricoes": self.transcricoes,
            "uploads": self.uploads,
        }


class DiarioPipeline:
    """
    Orquestra o salvamento de um registro do diário de bordo.

    Pipeline:
    1. Criar evento (DRAFT)
    2. Enviar mídias
    3. Transcrever áudios (o servidor grava no evento)
    4. Finalizar (SAVED)
    """

    def __init__(self, client: DiarioApiClient, operator: Optional[OperatorConfig] = None):
        self.client = client
        self.operator = operator or OperatorConfig()

    @staticmethod
    def is_valid(
        detalhe: Optional[MediaFile],
        observacao: Optional[MediaFile],
        quick_observacao: bool = False,
    ) -> bool:
        """Ambos os áudios são obrigatórios, salvo no modo rápido."""
        return bool((detalhe or quick_observacao) and (observacao or quick_observacao))

    def buscar_refugo(self, etiqueta: str) -> dict:
        """
        Consulta o refugo da etiqueta.

        Raises:
            RegistroError: Etiqueta não encontrada ou erro da API
        """
        result = self.client.buscar_refugo(etiqueta)
        if result.get("error"):
            raise RegistroError(result["error"].get("message") or "Erro ao buscar etiqueta")
        return result["data"]

    def _upload(self, evento_id: str, media: Optional[MediaFile], tipo: str) -> bool:
        if media is None:
            return False
        result = self.client.upload_midia(
            evento_id,
            media.conteudo,
            tipo,
            media.mime_type,
            nome_arquivo=media.nome,
            duracao_seg=media.duracao_seg,
        )
        if result.get("error"):
            logger.warning(f"Falha no upload de {tipo}: {result['error'].get('message')}")
            return False
        return True

    def _transcrever(self, evento_id: str, media: Optional[MediaFile], tipo: str) -> Optional[str]:
        if media is None:
            return None
        result = self.client.transcrever_audio(
            media.conteudo,
            mime_type=media.mime_type,
            evento_id=evento_id,
            tipo=tipo,
        )
        if result.get("error"):
            logger.error(f"Erro na transcrição de {tipo}: {result['error']}")
            return None
        return result.get("text")

    def save(
        self,
        refugo: dict,
        detalhe: Optional[MediaFile] = None,
        observacao: Optional[MediaFile] = None,
        foto: Optional[MediaFile] = None,
        quick_observacao: bool = False,
        on_status=None,
    ) -> RegistroResult:
        """
        Salva o registro completo.

        Args:
            refugo: Dados do refugo consultado pela etiqueta
            detalhe: Áudio "o que aconteceu"
            observacao: Áudio "o que você percebeu"
            foto: Foto opcional
            quick_observacao: Usa a observação padrão quando não há áudio
            on_status: Callback com mensagens de progresso

        Returns:
            RegistroResult com ID do evento e transcrições

        Raises:
            RegistroError: Dados incompletos ou falha ao criar/finalizar evento
        """
        status = on_status or (lambda msg: None)

        if not refugo:
            raise RegistroError("Refugo não informado")
        if not self.is_valid(detalhe, observacao, quick_observacao):
            raise RegistroError("Grave o detalhe e a observação antes de salvar")

        status("Criando registro...")
        dados = {k: refugo.get(k) for k in REFUGO_EVENTO_FIELDS}
        dados["usuario_nome"] = self.operator.nome
        dados["usuario_matricula"] = self.operator.matricula or None

        created = self.client.criar_evento(dados)
        if created.get("error"):
            raise RegistroError(created["error"].get("message") or "Erro ao criar evento")
        evento_id = created["data"]["evento_id"]
        logger.info(f"Evento {evento_id} criado para etiqueta {dados.get('etiqueta')}")

        status("Enviando arquivos...")
        uploads = sum([
            self._upload(evento_id, detalhe, TIPO_AUDIO_DETALHE),
            self._upload(evento_id, observacao, TIPO_AUDIO_OBSERVACAO),
            self._upload(evento_id, foto, TIPO_FOTO),
        ])

        status("Transcrevendo áudios...")
        transcricoes = {}
        texto = self._transcrever(evento_id, detalhe, "detalhe")
        if texto:
            transcricoes["detalhe"] = texto

        if observacao is not None:
            texto = self._transcrever(evento_id, observacao, "observacao")
            if texto:
                transcricoes["observacao"] = texto
        elif quick_observacao:
            transcricoes["observacao"] = QUICK_OBSERVACAO

        status("Finalizando...")
        quick_text = QUICK_OBSERVACAO if quick_observacao and observacao is None else None
        finalized = self.client.finalizar_evento(evento_id, observacao=quick_text)
        if finalized.get("error"):
            raise RegistroError(finalized["error"].get("message") or "Erro ao finalizar evento")

        logger.info(f"✅ Registro {evento_id} salvo ({uploads} arquivos)")
        return RegistroResult(
            evento_id=evento_id,
            etiqueta=dados.get("etiqueta"),
            transcricoes=transcricoes,
            uploads=uploads,
        )
