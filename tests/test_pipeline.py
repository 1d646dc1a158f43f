"""Testes para o fluxo de registro do operador."""

import numpy as np
import pytest

from diario_bordo.audio.capture import AudioBuffer
from diario_bordo.pipeline import QUICK_OBSERVACAO, DiarioPipeline, MediaFile, RegistroError
from diario_bordo.utils.config import OperatorConfig

REFUGO = {
    "etiqueta": "ETQ-1",
    "cod_defeito": "D12",
    "desc_defeito": "Bolha",
    "cod_produto": "P-9",
    "op": "OP-1",
    "dt_refugo": "2025-01-14",
    "centro_custo": "CC-1",
    "turno": "B",
}


class FakeClient:
    """Cliente da API simulado que registra as chamadas."""

    def __init__(self):
        self.calls = []
        self.evento_error = None
        self.finalize_error = None
        self.transcription_error = None
        self.refugo = {"data": REFUGO, "error": None}

    def buscar_refugo(self, etiqueta):
        self.calls.append(("buscar_refugo", etiqueta))
        return self.refugo

    def criar_evento(self, dados):
        self.calls.append(("criar_evento", dados))
        if self.evento_error:
            return {"data": None, "error": {"message": self.evento_error}}
        return {"data": {"evento_id": "ev-1", **dados}, "error": None}

    def upload_midia(self, evento_id, conteudo, tipo, mime_type, nome_arquivo=None, duracao_seg=None):
        self.calls.append(("upload", tipo, duracao_seg))
        return {"data": {"arquivo_url": f"http://x/{tipo}"}, "error": None}

    def transcrever_audio(self, conteudo, mime_type="audio/wav", evento_id=None, tipo="detalhe", language="pt"):
        self.calls.append(("transcrever", tipo))
        if self.transcription_error:
            return {"text": None, "error": self.transcription_error}
        return {"text": f"texto {tipo}", "error": None}

    def finalizar_evento(self, evento_id, detalhe=None, observacao=None):
        self.calls.append(("finalizar", evento_id, observacao))
        if self.finalize_error:
            return {"data": None, "error": {"message": self.finalize_error}}
        return {"data": {"status": "SAVED"}, "error": None}


def audio():
    return MediaFile(conteudo=b"wav", mime_type="audio/wav", duracao_seg=3)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def pipeline(client):
    return DiarioPipeline(client, OperatorConfig(nome="Maria", matricula="4321"))


def test_is_valid():
    """Detalhe e observação obrigatórios, exceto no modo rápido."""
    assert DiarioPipeline.is_valid(audio(), audio())
    assert not DiarioPipeline.is_valid(audio(), None)
    assert not DiarioPipeline.is_valid(None, audio())
    assert DiarioPipeline.is_valid(audio(), None, quick_observacao=True)
    assert DiarioPipeline.is_valid(None, None, quick_observacao=True)


def test_save_full_flow(client, pipeline):
    result = pipeline.save(REFUGO, detalhe=audio(), observacao=audio(), foto=MediaFile(b"jpg", "image/jpeg"))

    assert result.evento_id == "ev-1"
    assert result.uploads == 3
    assert result.transcricoes == {"detalhe": "texto detalhe", "observacao": "texto observacao"}

    names = [c[0] for c in client.calls]
    assert names == ["criar_evento", "upload", "upload", "upload", "transcrever", "transcrever", "finalizar"]
    assert [c[1] for c in client.calls if c[0] == "upload"] == ["AUDIO_DETALHE", "AUDIO_OBSERVACAO", "FOTO"]

    dados = client.calls[0][1]
    assert dados["usuario_nome"] == "Maria"
    assert dados["usuario_matricula"] == "4321"
    assert dados["cod_defeito"] == "D12"
    assert "turno" not in dados

    assert client.calls[-1] == ("finalizar", "ev-1", None)


def test_save_quick_observacao(client, pipeline):
    """Observação rápida sem áudio grava o texto padrão."""
    result = pipeline.save(REFUGO, detalhe=audio(), quick_observacao=True)

    assert result.transcricoes["observacao"] == QUICK_OBSERVACAO
    assert client.calls[-1] == ("finalizar", "ev-1", QUICK_OBSERVACAO)
    assert [c[1] for c in client.calls if c[0] == "transcrever"] == ["detalhe"]


def test_quick_mode_with_recorded_observacao(client, pipeline):
    """Áudio de observação tem precedência sobre o modo rápido."""
    result = pipeline.save(REFUGO, detalhe=audio(), observacao=audio(), quick_observacao=True)
    assert result.transcricoes["observacao"] == "texto observacao"
    assert client.calls[-1] == ("finalizar", "ev-1", None)


def test_transcription_failure_does_not_abort(client, pipeline):
    client.transcription_error = "Erro Whisper API: 500"

    result = pipeline.save(REFUGO, detalhe=audio(), observacao=audio())

    assert result.transcricoes == {}
    assert client.calls[-1][0] == "finalizar"


def test_invalid_save_makes_no_calls(client, pipeline):
    with pytest.raises(RegistroError):
        pipeline.save(REFUGO, detalhe=audio())
    assert client.calls == []

    with pytest.raises(RegistroError):
        pipeline.save({}, detalhe=audio(), observacao=audio())


def test_evento_error_raises(client, pipeline):
    client.evento_error = "Erro no banco"
    with pytest.raises(RegistroError, match="Erro no banco"):
        pipeline.save(REFUGO, detalhe=audio(), observacao=audio())
    assert [c[0] for c in client.calls] == ["criar_evento"]


def test_finalize_error_raises(client, pipeline):
    client.finalize_error = "Evento não encontrado"
    with pytest.raises(RegistroError, match="Evento não encontrado"):
        pipeline.save(REFUGO, detalhe=audio(), observacao=audio())


def test_buscar_refugo(client, pipeline):
    assert pipeline.buscar_refugo("ETQ-1")["cod_produto"] == "P-9"

    client.refugo = {"data": None, "error": {"message": "Etiqueta não encontrada / refugo não registrado ainda"}}
    with pytest.raises(RegistroError, match="refugo não registrado"):
        pipeline.buscar_refugo("ETQ-2")


def test_status_callback(pipeline):
    messages = []
    pipeline.save(REFUGO, detalhe=audio(), quick_observacao=True, on_status=messages.append)
    assert messages == ["Criando registro...", "Enviando arquivos...", "Transcrevendo áudios...", "Finalizando..."]


def test_media_from_audio_buffer():
    buffer = AudioBuffer(
        data=np.zeros(32000, dtype=np.int16),
        sample_rate=16000,
        channels=1,
        duration=2.0,
        timestamp=0.0,
    )
    media = MediaFile.from_audio(buffer)
    assert media.mime_type == "audio/wav"
    assert media.duracao_seg == 2
    assert media.conteudo[:4] == b"RIFF"


def test_media_from_path(tmp_path):
    foto = tmp_path / "foto.jpg"
    foto.write_bytes(b"jpg")
    media = MediaFile.from_path(str(foto))
    assert media.mime_type == "image/jpeg"
    assert media.nome == "foto.jpg"
