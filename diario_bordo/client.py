"""
Cliente HTTP da API do Diário de Bordo.

Todas as chamadas retornam o envelope {"data": ..., "error": {"message": ...}};
falhas de rede viram error.message em vez de exceção.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .utils.media import audio_upload_name

logger = logging.getLogger(__name__)

ETIQUETA_NAO_ENCONTRADA = "Etiqueta não encontrada"
ETIQUETA_NAO_REGISTRADA = "Etiqueta não encontrada / refugo não registrado ainda"


def _error(message: str) -> Dict[str, Any]:
    return {"data": None, "error": {"message": message}}


class DiarioApiClient:
    """Cliente da API REST (usado pelo fluxo do operador no terminal)."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        timeout: float = 30.0,
        transcription_timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.transcription_timeout = transcription_timeout
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Erro de comunicação com a API ({endpoint}): {e}")
            return _error(str(e))

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            if not isinstance(error, dict):
                error = {"message": error or f"HTTP {response.status_code}"}
            return {"data": None, "error": error}

        return body

    # ==========================================================================
    # Refugo
    # ==========================================================================

    def buscar_refugo(self, etiqueta: str) -> Dict[str, Any]:
        """Busca refugo pela etiqueta (com campos de exibição preenchidos)."""
        if not etiqueta or not etiqueta.strip():
            return _error("Etiqueta inválida")

        result = self._request("GET", f"/api/refugo/{etiqueta.strip()}")
        error = result.get("error")
        if error and error.get("message") == ETIQUETA_NAO_ENCONTRADA:
            return _error(ETIQUETA_NAO_REGISTRADA)

        data = result.get("data")
        if data:
            result["data"] = {
                **data,
                "nome_produto": data.get("nome_produto") or data.get("cod_produto"),
                "linha": data.get("linha"),
                "maquina": data.get("maquina"),
                "posto": data.get("posto"),
            }
        return result

    def listar_refugos(self, limite: int = 50) -> Dict[str, Any]:
        return self._request("GET", "/api/refugos", params={"limit": limite})

    # ==========================================================================
    # Diário
    # ==========================================================================

    def criar_evento(self, dados: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/diario-evento", json=dados)

    def buscar_evento(self, evento_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/diario-evento/{evento_id}")

    def listar_eventos(self, limite: int = 100) -> Dict[str, Any]:
        return self._request("GET", "/api/diario-eventos", params={"limit": limite})

    def atualizar_transcricao(
        self, evento_id: str, detalhe: Optional[str] = None, observacao: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = {}
        if detalhe is not None:
            payload["detalhe"] = detalhe
        if observacao is not None:
            payload["observacao"] = observacao
        return self._request("PATCH", f"/api/diario-evento/{evento_id}/transcricao", json=payload)

    def finalizar_evento(
        self, evento_id: str, detalhe: Optional[str] = None, observacao: Optional[str] = None
    ) -> Dict[str, Any]:
        """Atualiza transcrições informadas e marca o evento como SAVED."""
        if detalhe is not None or observacao is not None:
            result = self.atualizar_transcricao(evento_id, detalhe=detalhe, observacao=observacao)
            if result.get("error"):
                return result
        return self._request("PATCH", f"/api/diario-evento/{evento_id}/finalizar")

    def excluir_evento(self, evento_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/diario-evento/{evento_id}")

    def registrar_midia(self, evento_id: str, tipo: str, **metadados) -> Dict[str, Any]:
        return self._request("POST", "/api/diario-midia", json={
            "evento_id": evento_id,
            "tipo": tipo,
            **metadados,
        })

    def upload_midia(
        self,
        evento_id: str,
        conteudo: bytes,
        tipo: str,
        mime_type: str,
        nome_arquivo: Optional[str] = None,
        duracao_seg: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Envia arquivo de mídia e registra seus metadados."""
        form = {"evento_id": evento_id, "tipo": tipo}
        if duracao_seg:
            form["duracao_seg"] = str(duracao_seg)
        nome_arquivo = nome_arquivo or audio_upload_name(tipo, mime_type)

        result = self._request(
            "POST", "/api/upload-midia",
            data=form,
            files={"file": (nome_arquivo, conteudo, mime_type)},
        )
        if result.get("data"):
            logger.info(f"Upload concluído: {result['data'].get('arquivo_url')}")
        return result

    # ==========================================================================
    # Transcrição
    # ==========================================================================

    def transcrever_audio(
        self,
        conteudo: bytes,
        mime_type: str = "audio/wav",
        evento_id: Optional[str] = None,
        tipo: str = "detalhe",
        language: str = "pt",
    ) -> Dict[str, Optional[str]]:
        """
        Transcreve áudio pela API (e grava no evento, se informado).

        Returns:
            {"text": str | None, "error": str | None}
        """
        if not conteudo:
            return {"text": None, "error": "Áudio não fornecido"}

        form = {"language": language}
        if evento_id:
            form["evento_id"] = evento_id
            form["tipo"] = tipo

        try:
            response = self._client.post(
                "/api/transcribe-audio",
                data=form,
                files={"file": (audio_upload_name("audio", mime_type), conteudo, mime_type)},
                timeout=self.transcription_timeout,
            )
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Erro ao transcrever áudio: {e}")
            return {"text": None, "error": str(e)}
        except ValueError:
            return {"text": None, "error": f"Erro HTTP {response.status_code}"}

        if response.is_error or not body.get("success"):
            return {"text": None, "error": body.get("error") or f"Erro HTTP {response.status_code}"}

        return {"text": body.get("text"), "error": None}

    # ==========================================================================
    # Utilitários
    # ==========================================================================

    def health_check(self) -> Dict[str, Any]:
        try:
            response = self._client.get("/api/health")
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"status": "error", "error": str(e)}

    def test_connection(self) -> Dict[str, Any]:
        try:
            return self._client.get("/api/test-connection").json()
        except (httpx.HTTPError, ValueError) as e:
            return {"success": False, "message": str(e)}

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
