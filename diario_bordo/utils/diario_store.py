"""
Armazenamento persistente do Diário de Bordo.

Utiliza SQLite com três tabelas:
- v_refugo: refugos importados do sistema da fábrica (consulta por etiqueta)
- dw_diariobordo_refugo_evento: eventos registrados pelos operadores
- dw_diariobordo_refugo_midia: áudios e fotos de cada evento
"""

import csv
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional
import logging

from .media import transcription_column

logger = logging.getLogger(__name__)

STATUS_DRAFT = "DRAFT"
STATUS_SAVED = "SAVED"

# Sentinela para diferenciar "não informado" de None (que grava NULL)
UNSET = object()

REFUGO_COLUMNS = [
    "id", "filial", "data_registro", "dt_refugo", "etiqueta", "cod_produto",
    "op", "centro_custo", "cod_defeito", "desc_defeito", "usuario",
    "qtd_retrabalho", "qtd_refugo", "numseq", "turno", "recurso",
]

# Cabeçalhos da view de origem (ELIPSE) -> colunas locais
REFUGO_CSV_HEADERS = {
    "ID": "id",
    "Filial": "filial",
    "Data": "data_registro",
    "Dt. Refugo": "dt_refugo",
    "Etiqueta": "etiqueta",
    "Cod. Produto": "cod_produto",
    "OP": "op",
    "Centro de Custo": "centro_custo",
    "Cod. Defeito": "cod_defeito",
    "Desc. Defeito": "desc_defeito",
    "Usuario": "usuario",
    "Qtd. Retrabalho": "qtd_retrabalho",
    "Qtd. Refugo": "qtd_refugo",
    "Numseq": "numseq",
    "Turno": "turno",
    "RECURSO": "recurso",
}

EVENTO_INPUT_FIELDS = [
    "etiqueta", "cod_defeito", "desc_defeito", "cod_produto", "op", "dt_refugo",
    "centro_custo", "usuario_nome", "usuario_matricula",
    "transcricao_detalhe", "transcricao_observacao",
]

MIDIA_INPUT_FIELDS = [
    "evento_id", "tipo", "arquivo_url", "arquivo_path", "mime_type",
    "duracao_seg", "tamanho_bytes",
]


class StoreError(Exception):
    """Erro de acesso ao banco do diário."""


@dataclass
class MidiaRecord:
    """Mídia (áudio ou foto) de um evento."""
    midia_id: str
    evento_id: str
    tipo: str
    arquivo_url: Optional[str] = None
    arquivo_path: Optional[str] = None
    mime_type: Optional[str] = None
    duracao_seg: Optional[int] = None
    tamanho_bytes: Optional[int] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class EventoRecord:
    """Evento do diário de bordo."""
    evento_id: str
    etiqueta: Optional[str] = None
    cod_defeito: Optional[str] = None
    desc_defeito: Optional[str] = None
    cod_produto: Optional[str] = None
    op: Optional[str] = None
    dt_refugo: Optional[str] = None
    centro_custo: Optional[str] = None
    usuario_nome: Optional[str] = None
    usuario_matricula: Optional[str] = None
    transcricao_detalhe: Optional[str] = None
    transcricao_observacao: Optional[str] = None
    status: str = STATUS_DRAFT
    created_at: Optional[str] = None
    midias: List[MidiaRecord] = field(default_factory=list)

    def to_dict(self, include_midias: bool = True) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "midias"}
        if include_midias:
            data["midias"] = [m.to_dict() for m in self.midias]
        return data


def _row_to(cls, row: sqlite3.Row):
    names = {f.name for f in fields(cls)}
    return cls(**{k: row[k] for k in row.keys() if k in names})


class DiarioStore:
    """
    Gerenciador do banco do diário.

    Todas as consultas são parametrizadas; escritas são serializadas por lock.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Inicializa o store.

        Args:
            db_path: Caminho do banco SQLite (padrão: ~/.local/share/diario-bordo/diario.db)
        """
        if db_path is None:
            data_dir = Path.home() / ".local" / "share" / "diario-bordo"
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = str(data_dir / "diario.db")
        elif db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            db_path = str(Path(db_path).expanduser())

        self.db_path = db_path
        self._lock = threading.Lock()
        # :memory: precisa de uma única conexão compartilhada
        self._shared_conn: Optional[sqlite3.Connection] = None
        self._shared_lock = threading.RLock()
        if db_path == ":memory:":
            self._shared_conn = sqlite3.connect(db_path, check_same_thread=False)
            self._shared_conn.row_factory = sqlite3.Row

        self._init_db()
        logger.info(f"DiarioStore inicializado: {db_path}")

    def _init_db(self):
        """Inicializa o banco de dados."""
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS v_refugo (
                    id INTEGER PRIMARY KEY,
                    filial TEXT,
                    data_registro DATETIME,
                    dt_refugo DATETIME,
                    etiqueta TEXT NOT NULL,
                    cod_produto TEXT,
                    op TEXT,
                    centro_custo TEXT,
                    cod_defeito TEXT,
                    desc_defeito TEXT,
                    usuario TEXT,
                    qtd_retrabalho REAL,
                    qtd_refugo REAL,
                    numseq INTEGER,
                    turno TEXT,
                    recurso TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dw_diariobordo_refugo_evento (
                    evento_id TEXT PRIMARY KEY,
                    etiqueta TEXT,
                    cod_defeito TEXT,
                    desc_defeito TEXT,
                    cod_produto TEXT,
                    op TEXT,
                    dt_refugo DATETIME,
                    centro_custo TEXT,
                    usuario_nome TEXT,
                    usuario_matricula TEXT,
                    transcricao_detalhe TEXT,
                    transcricao_observacao TEXT,
                    status TEXT DEFAULT 'DRAFT',
                    created_at DATETIME NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dw_diariobordo_refugo_midia (
                    midia_id TEXT PRIMARY KEY,
                    evento_id TEXT NOT NULL,
                    tipo TEXT,
                    arquivo_url TEXT,
                    arquivo_path TEXT,
                    mime_type TEXT,
                    duracao_seg INTEGER,
                    tamanho_bytes INTEGER,
                    created_at DATETIME NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_refugo_etiqueta ON v_refugo(etiqueta)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_evento_created ON dw_diariobordo_refugo_evento(created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_midia_evento ON dw_diariobordo_refugo_midia(evento_id)")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Conexão com commit ao final (rollback em erro)."""
        if self._shared_conn is not None:
            # Leituras e escritas passam pelo mesmo lock na conexão compartilhada
            with self._shared_lock:
                try:
                    yield self._shared_conn
                    self._shared_conn.commit()
                except sqlite3.Error as e:
                    self._shared_conn.rollback()
                    raise StoreError(str(e)) from e
            return

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def test_connection(self) -> bool:
        """Verifica se o banco responde."""
        with self._connection() as conn:
            row = conn.execute("SELECT 1 AS connected").fetchone()
            return row["connected"] == 1

    # ==========================================================================
    # Refugo
    # ==========================================================================

    def get_refugo(self, etiqueta: str) -> Optional[Dict[str, Any]]:
        """Refugo mais recente para a etiqueta."""
        with self._connection() as conn:
            row = conn.execute(f"""
                SELECT {', '.join(REFUGO_COLUMNS)}
                FROM v_refugo
                WHERE etiqueta = ?
                ORDER BY dt_refugo DESC
                LIMIT 1
            """, (etiqueta,)).fetchone()
        return dict(row) if row else None

    def list_refugos(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Lista refugos recentes."""
        with self._connection() as conn:
            rows = conn.execute(f"""
                SELECT {', '.join(REFUGO_COLUMNS)}
                FROM v_refugo
                ORDER BY dt_refugo DESC
                LIMIT ?
            """, (limit,)).fetchall()
        return [dict(r) for r in rows]

    def import_refugos(self, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Importa refugos (aceita cabeçalhos da view de origem ou colunas locais).

        Returns:
            Quantidade de linhas importadas
        """
        count = 0
        with self._lock:
            with self._connection() as conn:
                for raw in rows:
                    row = {REFUGO_CSV_HEADERS.get(k, k): v for k, v in raw.items()}
                    if not row.get("etiqueta"):
                        continue
                    values = {c: (row.get(c) if row.get(c) != "" else None) for c in REFUGO_COLUMNS}
                    conn.execute(f"""
                        INSERT OR REPLACE INTO v_refugo ({', '.join(REFUGO_COLUMNS)})
                        VALUES ({', '.join('?' for _ in REFUGO_COLUMNS)})
                    """, [values[c] for c in REFUGO_COLUMNS])
                    count += 1

        logger.info(f"{count} refugos importados")
        return count

    def import_refugos_csv(self, csv_path: str, delimiter: str = ",") -> int:
        """Importa refugos de um arquivo CSV exportado da view."""
        with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
            return self.import_refugos(csv.DictReader(f, delimiter=delimiter))

    # ==========================================================================
    # Eventos
    # ==========================================================================

    def create_evento(self, dados: Dict[str, Any]) -> EventoRecord:
        """Cria um evento no diário."""
        evento_id = str(uuid.uuid4())
        created_at = datetime.now().isoformat()
        values = [dados.get(k) for k in EVENTO_INPUT_FIELDS]

        with self._lock:
            with self._connection() as conn:
                conn.execute(f"""
                    INSERT INTO dw_diariobordo_refugo_evento
                    (evento_id, {', '.join(EVENTO_INPUT_FIELDS)}, status, created_at)
                    VALUES (?, {', '.join('?' for _ in EVENTO_INPUT_FIELDS)}, ?, ?)
                """, [evento_id, *values, STATUS_DRAFT, created_at])

        logger.debug(f"Evento criado: {evento_id}")
        return self.get_evento(evento_id)

    def _load_midias(self, conn: sqlite3.Connection, evento_id: str) -> List[MidiaRecord]:
        rows = conn.execute("""
            SELECT * FROM dw_diariobordo_refugo_midia
            WHERE evento_id = ?
            ORDER BY created_at
        """, (evento_id,)).fetchall()
        return [_row_to(MidiaRecord, r) for r in rows]

    def get_evento(self, evento_id: str) -> Optional[EventoRecord]:
        """Busca evento por ID, com mídias."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM dw_diariobordo_refugo_evento WHERE evento_id = ?",
                (evento_id,),
            ).fetchone()
            if not row:
                return None
            evento = _row_to(EventoRecord, row)
            evento.midias = self._load_midias(conn, evento_id)
        return evento

    def list_eventos(self, limit: int = 100) -> List[EventoRecord]:
        """Lista eventos recentes com mídias."""
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM dw_diariobordo_refugo_evento
                ORDER BY created_at DESC
                LIMIT ?
            """, (limit,)).fetchall()
            eventos = [_row_to(EventoRecord, r) for r in rows]
            for evento in eventos:
                evento.midias = self._load_midias(conn, evento.evento_id)
        return eventos

    def update_transcricao(
        self,
        evento_id: str,
        detalhe: Any = UNSET,
        observacao: Any = UNSET,
    ) -> Optional[EventoRecord]:
        """
        Atualiza transcrições do evento.

        Raises:
            ValueError: Se nenhum campo for informado
        """
        updates = {}
        if detalhe is not UNSET:
            updates["transcricao_detalhe"] = detalhe
        if observacao is not UNSET:
            updates["transcricao_observacao"] = observacao
        if not updates:
            raise ValueError("Nenhum campo para atualizar")

        assignments = ", ".join(f"{col} = ?" for col in updates)
        with self._lock:
            with self._connection() as conn:
                conn.execute(
                    f"UPDATE dw_diariobordo_refugo_evento SET {assignments} WHERE evento_id = ?",
                    [*updates.values(), evento_id],
                )
        return self.get_evento(evento_id)

    def set_transcricao(self, evento_id: str, tipo: str, texto: str) -> Optional[EventoRecord]:
        """Grava a transcrição de um áudio ('detalhe' ou 'observacao')."""
        if transcription_column(tipo) == "transcricao_detalhe":
            return self.update_transcricao(evento_id, detalhe=texto)
        return self.update_transcricao(evento_id, observacao=texto)

    def finalize_evento(self, evento_id: str) -> Optional[EventoRecord]:
        """Marca evento como SAVED."""
        with self._lock:
            with self._connection() as conn:
                conn.execute(
                    "UPDATE dw_diariobordo_refugo_evento SET status = ? WHERE evento_id = ?",
                    (STATUS_SAVED, evento_id),
                )
        return self.get_evento(evento_id)

    def delete_evento(self, evento_id: str) -> Optional[List[str]]:
        """
        Remove evento e suas mídias do banco.

        Returns:
            Caminhos dos arquivos das mídias removidas, ou None se o evento não existe
        """
        with self._lock:
            with self._connection() as conn:
                paths = [
                    r["arquivo_path"]
                    for r in conn.execute(
                        "SELECT arquivo_path FROM dw_diariobordo_refugo_midia WHERE evento_id = ?",
                        (evento_id,),
                    ).fetchall()
                    if r["arquivo_path"]
                ]
                conn.execute("DELETE FROM dw_diariobordo_refugo_midia WHERE evento_id = ?", (evento_id,))
                cursor = conn.execute(
                    "DELETE FROM dw_diariobordo_refugo_evento WHERE evento_id = ?",
                    (evento_id,),
                )
                if cursor.rowcount == 0:
                    return None

        logger.info(f"Evento {evento_id} excluído")
        return paths

    def pending_transcriptions(self, limit: int = 50) -> List[EventoRecord]:
        """Eventos com alguma transcrição faltando (mais recentes primeiro)."""
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM dw_diariobordo_refugo_evento
                WHERE transcricao_detalhe IS NULL OR transcricao_observacao IS NULL
                ORDER BY created_at DESC
                LIMIT ?
            """, (limit,)).fetchall()
            eventos = [_row_to(EventoRecord, r) for r in rows]
            for evento in eventos:
                evento.midias = self._load_midias(conn, evento.evento_id)
        return eventos

    # ==========================================================================
    # Mídias
    # ==========================================================================

    def add_midia(self, dados: Dict[str, Any]) -> MidiaRecord:
        """Registra metadados de uma mídia."""
        if not dados.get("evento_id"):
            raise ValueError("evento_id é obrigatório")

        midia_id = str(uuid.uuid4())
        created_at = datetime.now().isoformat()
        values = [dados.get(k) for k in MIDIA_INPUT_FIELDS]

        with self._lock:
            with self._connection() as conn:
                conn.execute(f"""
                    INSERT INTO dw_diariobordo_refugo_midia
                    (midia_id, {', '.join(MIDIA_INPUT_FIELDS)}, created_at)
                    VALUES (?, {', '.join('?' for _ in MIDIA_INPUT_FIELDS)}, ?)
                """, [midia_id, *values, created_at])
                row = conn.execute(
                    "SELECT * FROM dw_diariobordo_refugo_midia WHERE midia_id = ?",
                    (midia_id,),
                ).fetchone()

        return _row_to(MidiaRecord, row)

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None
