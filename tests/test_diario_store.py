"""Testes para o banco do diário de bordo."""

import tempfile
import threading
from pathlib import Path

import pytest

from diario_bordo.utils.diario_store import (
    STATUS_DRAFT,
    STATUS_SAVED,
    DiarioStore,
)

REFUGO_VIEW_ROW = {
    "ID": "101",
    "Filial": "01",
    "Data": "2025-01-14 08:00:00",
    "Dt. Refugo": "2025-01-14 07:55:00",
    "Etiqueta": "ETQ-0001",
    "Cod. Produto": "ASSENTO-44",
    "OP": "OP-7788",
    "Centro de Custo": "CC-200",
    "Cod. Defeito": "D12",
    "Desc. Defeito": "Bolha na espuma",
    "Usuario": "jsilva",
    "Qtd. Retrabalho": "0",
    "Qtd. Refugo": "1",
    "Numseq": "1",
    "Turno": "B",
    "RECURSO": "PU-03",
}


@pytest.fixture
def store():
    """Fixture de banco temporário."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DiarioStore(str(Path(tmpdir) / "diario.db"))
        yield db
        db.close()


@pytest.fixture
def evento(store):
    return store.create_evento({
        "etiqueta": "ETQ-0001",
        "cod_defeito": "D12",
        "usuario_nome": "Operador",
    })


def test_connection(store):
    assert store.test_connection()


def test_memory_database():
    db = DiarioStore(":memory:")
    evento = db.create_evento({"etiqueta": "X"})
    assert db.get_evento(evento.evento_id).etiqueta == "X"
    db.close()


def test_import_and_get_refugo(store):
    """Importa linha com cabeçalhos da view e busca por etiqueta."""
    assert store.import_refugos([REFUGO_VIEW_ROW]) == 1

    refugo = store.get_refugo("ETQ-0001")
    assert refugo["cod_produto"] == "ASSENTO-44"
    assert refugo["desc_defeito"] == "Bolha na espuma"
    assert refugo["turno"] == "B"
    assert store.get_refugo("ETQ-9999") is None


def test_get_refugo_returns_latest(store):
    store.import_refugos([
        {**REFUGO_VIEW_ROW, "ID": "1", "Dt. Refugo": "2025-01-10 10:00:00", "Cod. Defeito": "OLD"},
        {**REFUGO_VIEW_ROW, "ID": "2", "Dt. Refugo": "2025-01-12 10:00:00", "Cod. Defeito": "NEW"},
    ])
    assert store.get_refugo("ETQ-0001")["cod_defeito"] == "NEW"
    assert len(store.list_refugos(limit=1)) == 1


def test_import_skips_rows_without_etiqueta(store):
    assert store.import_refugos([{**REFUGO_VIEW_ROW, "Etiqueta": ""}]) == 0


def test_import_csv(store, tmp_path):
    csv_path = tmp_path / "refugos.csv"
    header = ",".join(REFUGO_VIEW_ROW.keys())
    values = ",".join(REFUGO_VIEW_ROW.values())
    csv_path.write_text(f"{header}\n{values}\n", encoding="utf-8")

    assert store.import_refugos_csv(str(csv_path)) == 1
    assert store.get_refugo("ETQ-0001")["op"] == "OP-7788"


def test_create_evento(store, evento):
    """Evento nasce como DRAFT."""
    assert evento.status == STATUS_DRAFT
    assert evento.created_at
    assert evento.midias == []

    loaded = store.get_evento(evento.evento_id)
    assert loaded.etiqueta == "ETQ-0001"
    assert loaded.usuario_nome == "Operador"


def test_get_missing_evento(store):
    assert store.get_evento("nao-existe") is None


def test_update_transcricao(store, evento):
    updated = store.update_transcricao(evento.evento_id, detalhe="Máquina travou")
    assert updated.transcricao_detalhe == "Máquina travou"
    assert updated.transcricao_observacao is None

    updated = store.update_transcricao(evento.evento_id, observacao="Barulho no agitador")
    assert updated.transcricao_detalhe == "Máquina travou"
    assert updated.transcricao_observacao == "Barulho no agitador"


def test_update_transcricao_explicit_none(store, evento):
    """None informado grava NULL."""
    store.update_transcricao(evento.evento_id, detalhe="texto")
    updated = store.update_transcricao(evento.evento_id, detalhe=None)
    assert updated.transcricao_detalhe is None


def test_update_transcricao_requires_field(store, evento):
    with pytest.raises(ValueError, match="Nenhum campo para atualizar"):
        store.update_transcricao(evento.evento_id)


def test_set_transcricao_by_tipo(store, evento):
    store.set_transcricao(evento.evento_id, "detalhe", "A")
    store.set_transcricao(evento.evento_id, "observacao", "B")
    loaded = store.get_evento(evento.evento_id)
    assert loaded.transcricao_detalhe == "A"
    assert loaded.transcricao_observacao == "B"


def test_finalize_evento(store, evento):
    assert store.finalize_evento(evento.evento_id).status == STATUS_SAVED
    assert store.finalize_evento("nao-existe") is None


def test_add_midia(store, evento):
    midia = store.add_midia({
        "evento_id": evento.evento_id,
        "tipo": "AUDIO_DETALHE",
        "arquivo_path": "/tmp/a.webm",
        "duracao_seg": 12,
    })
    assert midia.midia_id
    assert midia.duracao_seg == 12

    loaded = store.get_evento(evento.evento_id)
    assert [m.tipo for m in loaded.midias] == ["AUDIO_DETALHE"]
    assert loaded.to_dict()["midias"][0]["arquivo_path"] == "/tmp/a.webm"


def test_add_midia_requires_evento(store):
    with pytest.raises(ValueError):
        store.add_midia({"tipo": "FOTO"})


def test_list_eventos(store):
    first = store.create_evento({"etiqueta": "A"})
    store.create_evento({"etiqueta": "B"})
    store.add_midia({"evento_id": first.evento_id, "tipo": "FOTO"})

    eventos = store.list_eventos()
    assert {e.etiqueta for e in eventos} == {"A", "B"}
    by_etiqueta = {e.etiqueta: e for e in eventos}
    assert len(by_etiqueta["A"].midias) == 1
    assert len(store.list_eventos(limit=1)) == 1


def test_delete_evento(store, evento):
    """Exclusão remove mídias e retorna caminhos dos arquivos."""
    store.add_midia({"evento_id": evento.evento_id, "tipo": "FOTO", "arquivo_path": "/tmp/f.jpg"})
    store.add_midia({"evento_id": evento.evento_id, "tipo": "AUDIO_DETALHE"})

    assert store.delete_evento(evento.evento_id) == ["/tmp/f.jpg"]
    assert store.get_evento(evento.evento_id) is None
    assert store.delete_evento(evento.evento_id) is None


def test_pending_transcriptions(store):
    pendente = store.create_evento({"etiqueta": "A"})
    completo = store.create_evento({
        "etiqueta": "B",
        "transcricao_detalhe": "x",
        "transcricao_observacao": "y",
    })

    ids = [e.evento_id for e in store.pending_transcriptions()]
    assert pendente.evento_id in ids
    assert completo.evento_id not in ids


def test_memory_store_serializes_reads():
    """No banco em memória, leituras esperam quem está usando a conexão."""
    store = DiarioStore(":memory:")
    holding = threading.Event()
    release = threading.Event()

    def hold_connection():
        with store._connection():
            holding.set()
            release.wait(5)

    holder = threading.Thread(target=hold_connection)
    holder.start()
    assert holding.wait(5)

    results = []
    reader = threading.Thread(target=lambda: results.append(store.list_refugos()))
    reader.start()
    reader.join(0.2)
    assert reader.is_alive()

    release.set()
    reader.join(5)
    holder.join(5)
    assert results == [[]]
