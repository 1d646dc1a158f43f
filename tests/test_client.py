"""Testes para o cliente HTTP da API."""

import json

import httpx

from diario_bordo.client import ETIQUETA_NAO_REGISTRADA, DiarioApiClient


def make_client(handler) -> DiarioApiClient:
    return DiarioApiClient("http://api.test", transport=httpx.MockTransport(handler))


def test_buscar_refugo_maps_not_found():
    """404 de etiqueta vira mensagem amigável."""
    def handler(request):
        assert request.url.path == "/api/refugo/ETQ-1"
        return httpx.Response(404, json={"data": None, "error": {"message": "Etiqueta não encontrada"}})

    result = make_client(handler).buscar_refugo("  ETQ-1 ")
    assert result == {"data": None, "error": {"message": ETIQUETA_NAO_REGISTRADA}}


def test_buscar_refugo_fills_display_fields():
    def handler(request):
        return httpx.Response(200, json={"data": {"etiqueta": "ETQ-1", "cod_produto": "P-9"}, "error": None})

    data = make_client(handler).buscar_refugo("ETQ-1")["data"]
    assert data["nome_produto"] == "P-9"
    assert data["linha"] is None


def test_buscar_refugo_invalid():
    def handler(request):
        raise AssertionError("não deveria chamar a API")

    assert make_client(handler).buscar_refugo("  ")["error"]["message"] == "Etiqueta inválida"


def test_network_error_becomes_envelope():
    def handler(request):
        raise httpx.ConnectError("conexão recusada", request=request)

    result = make_client(handler).criar_evento({"etiqueta": "X"})
    assert result["data"] is None
    assert "conexão recusada" in result["error"]["message"]


def test_http_error_without_body():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    assert make_client(handler).listar_eventos()["error"] == {"message": "HTTP 502"}


def test_finalizar_with_quick_observacao():
    """Grava a observação antes de finalizar."""
    calls = []

    def handler(request):
        body = json.loads(request.read() or b"null")
        calls.append((request.method, request.url.path, body))
        return httpx.Response(200, json={"data": {"status": "SAVED"}, "error": None})

    result = make_client(handler).finalizar_evento("ev-1", observacao="Não vi nada de diferente")

    assert result["data"]["status"] == "SAVED"
    assert calls == [
        ("PATCH", "/api/diario-evento/ev-1/transcricao", {"observacao": "Não vi nada de diferente"}),
        ("PATCH", "/api/diario-evento/ev-1/finalizar", None),
    ]


def test_transcrever_audio():
    captured = {}

    def handler(request):
        captured["body"] = request.read()
        return httpx.Response(200, json={"success": True, "text": "texto"})

    result = make_client(handler).transcrever_audio(b"wav", "audio/wav", evento_id="ev-1", tipo="detalhe")
    assert result == {"text": "texto", "error": None}
    assert b'name="evento_id"' in captured["body"]
    assert b'filename="audio.wav"' in captured["body"]


def test_transcrever_audio_error():
    def handler(request):
        return httpx.Response(500, json={"success": False, "error": "Erro Whisper API: 401"})

    result = make_client(handler).transcrever_audio(b"wav")
    assert result == {"text": None, "error": "Erro Whisper API: 401"}


def test_transcrever_audio_empty():
    def handler(request):
        raise AssertionError("não deveria chamar a API")

    assert make_client(handler).transcrever_audio(b"")["error"] == "Áudio não fornecido"


def test_upload_midia():
    captured = {}

    def handler(request):
        captured["body"] = request.read()
        return httpx.Response(200, json={"data": {"arquivo_url": "http://x/audio/a.wav"}, "error": None})

    result = make_client(handler).upload_midia("ev-1", b"wav", "AUDIO_DETALHE", "audio/wav", duracao_seg=4)
    assert result["data"]["arquivo_url"] == "http://x/audio/a.wav"
    assert b'filename="audio_detalhe.wav"' in captured["body"]
    assert b'name="duracao_seg"' in captured["body"]


def test_evento_routes():
    """Busca, lista e exclusão usam as rotas do diário."""
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path, dict(request.url.params)))
        return httpx.Response(200, json={"data": {"ok": True}, "error": None})

    client = make_client(handler)
    client.buscar_evento("ev-1")
    client.listar_refugos(limite=10)
    client.excluir_evento("ev-1")

    assert calls == [
        ("GET", "/api/diario-evento/ev-1", {}),
        ("GET", "/api/refugos", {"limit": "10"}),
        ("DELETE", "/api/diario-evento/ev-1", {}),
    ]


def test_excluir_evento_not_found():
    def handler(request):
        return httpx.Response(404, json={"data": None, "error": {"message": "Evento não encontrado"}})

    assert make_client(handler).excluir_evento("x")["error"]["message"] == "Evento não encontrado"


def test_registrar_midia():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.read())
        return httpx.Response(200, json={"data": {"midia_id": "m-1"}, "error": None})

    result = make_client(handler).registrar_midia("ev-1", "FOTO", arquivo_url="http://x/f.jpg")

    assert result["data"]["midia_id"] == "m-1"
    assert captured["body"] == {"evento_id": "ev-1", "tipo": "FOTO", "arquivo_url": "http://x/f.jpg"}


def test_health_and_connection():
    def handler(request):
        if request.url.path == "/api/health":
            return httpx.Response(200, json={"status": "ok", "timestamp": "2025-01-14T10:00:00"})
        return httpx.Response(200, json={"success": True, "message": "Conexão com banco OK"})

    client = make_client(handler)
    assert client.health_check()["status"] == "ok"
    assert client.test_connection()["success"] is True


def test_health_when_api_down():
    def handler(request):
        raise httpx.ConnectError("conexão recusada", request=request)

    client = make_client(handler)
    assert client.health_check()["status"] == "error"
    assert client.test_connection() == {"success": False, "message": "conexão recusada"}
