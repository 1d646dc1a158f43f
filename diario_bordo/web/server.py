"""
Servidor da API do Diário de Bordo.

Expõe refugos, eventos do diário, upload de mídias, transcrição de áudio
e os dados do FMEA Vivo.
"""

import logging
import threading
import traceback
from collections import Counter, deque
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS

from ..fmea import FmeaBoard, SIMULATION_MODES
from ..transcription import OpenAITranscriber, TranscriptionError, get_transcriber
from ..utils.config import Config, load_config
from ..utils.diario_store import UNSET, DiarioStore, StoreError
from ..utils.media import (
    TIPO_AUDIO_DETALHE,
    TIPO_AUDIO_OBSERVACAO,
    UPLOAD_SUBDIRS,
    is_supported_mime,
    is_valid_tipo,
    subdir_for_tipo,
    upload_filename,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class TranscriptionSlots:
    """Vagas de transcrição simultânea da aplicação (cada uma segura o áudio em memória)."""

    def __init__(self, total: int = 2):
        self.total = max(1, total)
        self._semaphore = threading.BoundedSemaphore(self.total)

    def try_acquire(self) -> bool:
        return self._semaphore.acquire(blocking=False)

    def release(self):
        self._semaphore.release()


def require_transcription_slot(view):
    """Recusa com 503 quando todas as vagas de transcrição estão ocupadas."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        slots: TranscriptionSlots = current_app.extensions["transcription_slots"]
        if not slots.try_acquire():
            logger.warning(f"⚠️ Transcrição recusada: {slots.total} em andamento")
            return jsonify({
                "success": False,
                "error": "Servidor ocupado processando outras transcrições",
            }), 503
        try:
            return view(*args, **kwargs)
        finally:
            slots.release()

    return wrapper


class MemoryLogHandler(logging.Handler):
    """Últimos registros de log da aplicação, consultados em /api/logs."""

    def __init__(self, max_entries: int = 200):
        super().__init__(level=logging.DEBUG)
        self.entries: deque = deque(maxlen=max(1, max_entries))
        self.level_counts: Counter = Counter()
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    @property
    def max_entries(self) -> int:
        return self.entries.maxlen

    def emit(self, record: logging.LogRecord):
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
                "raw_message": record.getMessage(),
            }
            if record.exc_info:
                entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        except Exception:
            self.handleError(record)
            return

        # emit() já roda com self.lock adquirido por handle()
        self.entries.append(entry)
        self.level_counts[record.levelname] += 1

    def query(self, level: Optional[str] = None, limit: int = 100, logger_name: Optional[str] = None) -> List[Dict]:
        """Registros filtrados, mais recentes primeiro."""
        with self.lock:
            entries = list(self.entries)

        if level:
            entries = [e for e in entries if e["level"] == level.upper()]
        if logger_name:
            entries = [e for e in entries if logger_name in e["logger"]]
        return entries[::-1][:max(0, limit)]

    def clear(self):
        with self.lock:
            self.entries.clear()
            self.level_counts.clear()

    def stats(self) -> Dict:
        with self.lock:
            return {
                "total": len(self.entries),
                "max_entries": self.max_entries,
                "errors": self.level_counts["ERROR"] + self.level_counts["CRITICAL"],
                "warnings": self.level_counts["WARNING"],
            }


def attach_memory_logs(app: Flask, max_entries: int) -> MemoryLogHandler:
    """
    Instala o buffer de logs da aplicação no logger raiz.

    Um buffer instalado por outra aplicação é substituído, então só o
    app criado por último recebe os registros.
    """
    root_logger = logging.getLogger()
    for handler in [h for h in root_logger.handlers if isinstance(h, MemoryLogHandler)]:
        root_logger.removeHandler(handler)

    handler = MemoryLogHandler(max_entries)
    root_logger.addHandler(handler)
    app.extensions["memory_logs"] = handler
    return handler


def envelope(data=None, error: Optional[str] = None, status: int = 200):
    """Resposta no formato {data, error}."""
    body = {"data": data, "error": {"message": error} if error else None}
    return jsonify(body), status


def _int_or_none(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def create_app(
    config: Optional[Config] = None,
    config_path: Optional[str] = None,
    store: Optional[DiarioStore] = None,
    transcriber: Optional[OpenAITranscriber] = None,
    board: Optional[FmeaBoard] = None,
) -> Flask:
    """
    Cria aplicação Flask da API.

    Args:
        config: Configuração já carregada (tem prioridade sobre config_path)
        config_path: Caminho do arquivo de configuração
        store: Banco do diário (criado a partir da config se None)
        transcriber: Cliente de transcrição (criado a partir da config se None)
        board: Quadro do FMEA Vivo

    Returns:
        Aplicação Flask configurada
    """
    config = config or load_config(config_path)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.uploads.max_file_size
    app.json.ensure_ascii = False

    if config.web.cors_enabled:
        CORS(app)

    log_handler = None
    if config.system.memory_logs_enabled:
        log_handler = attach_memory_logs(app, config.system.memory_logs_max_entries)

    store = store or DiarioStore(str(config.database_path))
    transcriber = transcriber or get_transcriber(config.transcription)
    board = board or FmeaBoard()

    uploads_dir = config.uploads_path
    for subdir in UPLOAD_SUBDIRS:
        (uploads_dir / subdir).mkdir(parents=True, exist_ok=True)
    url_base = config.uploads_url_base
    uploads_root = uploads_dir.resolve()

    def inside_uploads(path) -> bool:
        return uploads_root in Path(path).resolve().parents

    app.extensions["diario_store"] = store
    app.extensions["diario_transcriber"] = transcriber
    app.extensions["fmea_board"] = board
    app.extensions["transcription_slots"] = TranscriptionSlots(config.transcription.max_concurrent)

    logger.info(f"🌐 API do Diário de Bordo iniciada (uploads em {uploads_dir})")

    # ==========================================================================
    # Utilitários
    # ==========================================================================

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "timestamp": datetime.now().isoformat()})

    @app.route("/api/test-connection", methods=["GET"])
    def test_connection():
        """Testa conexão com o banco."""
        try:
            store.test_connection()
            return jsonify({
                "success": True,
                "message": "Conexão com banco OK",
                "database": store.db_path,
            })
        except StoreError as e:
            logger.error(f"Falha na conexão com o banco: {e}")
            return jsonify({"success": False, "message": str(e)}), 500

    # ==========================================================================
    # Refugo
    # ==========================================================================

    @app.route("/api/refugo/<etiqueta>", methods=["GET"])
    def get_refugo(etiqueta: str):
        """Busca refugo pela etiqueta."""
        try:
            refugo = store.get_refugo(etiqueta.strip())
            if refugo is None:
                return envelope(error="Etiqueta não encontrada", status=404)
            return envelope(refugo)
        except StoreError as e:
            logger.error(f"Erro ao buscar refugo: {e}")
            return envelope(error=str(e), status=500)

    @app.route("/api/refugos", methods=["GET"])
    def list_refugos():
        try:
            limit = request.args.get("limit", 50, type=int)
            return envelope(store.list_refugos(limit))
        except StoreError as e:
            logger.error(f"Erro ao listar refugos: {e}")
            return envelope(error=str(e), status=500)

    # ==========================================================================
    # Diário de bordo
    # ==========================================================================

    @app.route("/api/diario-evento", methods=["POST"])
    def create_evento():
        """Cria evento (status DRAFT)."""
        dados = request.get_json(silent=True)
        if not isinstance(dados, dict):
            return envelope(error="Corpo da requisição inválido", status=400)
        try:
            evento = store.create_evento(dados)
            logger.info(f"Evento criado: {evento.evento_id} (etiqueta {evento.etiqueta})")
            return envelope(evento.to_dict(include_midias=False))
        except StoreError as e:
            logger.error(f"Erro ao criar evento: {e}")
            return envelope(error=str(e), status=500)

    @app.route("/api/diario-eventos", methods=["GET"])
    def list_eventos():
        try:
            limit = request.args.get("limit", 100, type=int)
            return envelope([e.to_dict() for e in store.list_eventos(limit)])
        except StoreError as e:
            logger.error(f"Erro ao listar eventos: {e}")
            return envelope(error=str(e), status=500)

    @app.route("/api/diario-evento/<evento_id>", methods=["GET"])
    def get_evento(evento_id: str):
        try:
            evento = store.get_evento(evento_id)
            if evento is None:
                return envelope(error="Evento não encontrado", status=404)
            return envelope(evento.to_dict())
        except StoreError as e:
            logger.error(f"Erro ao buscar evento: {e}")
            return envelope(error=str(e), status=500)

    @app.route("/api/upload-midia", methods=["POST"])
    def upload_midia():
        """Salva arquivo de mídia e registra seus metadados."""
        file = request.files.get("file")
        if file is None or not file.filename:
            return envelope(error="Nenhum arquivo enviado", status=400)

        mime_type = file.mimetype
        if not is_supported_mime(mime_type):
            return envelope(error="Tipo de arquivo não permitido", status=400)

        evento_id = request.form.get("evento_id")
        tipo = request.form.get("tipo")
        if not is_valid_tipo(tipo):
            return envelope(error=f"Tipo de mídia inválido: {tipo}", status=400)

        subdir = subdir_for_tipo(tipo)
        filename = upload_filename(tipo, file.filename, mime_type)
        file_path = uploads_dir / subdir / filename
        if not inside_uploads(file_path):
            logger.warning(f"Upload recusado fora da pasta de uploads: {file_path}")
            return envelope(error="Caminho de upload inválido", status=400)

        try:
            file.save(str(file_path))
            midia = store.add_midia({
                "evento_id": evento_id,
                "tipo": tipo,
                "arquivo_url": f"{url_base}/{subdir}/{filename}",
                "arquivo_path": str(file_path),
                "mime_type": mime_type,
                "duracao_seg": _int_or_none(request.form.get("duracao_seg")),
                "tamanho_bytes": file_path.stat().st_size,
            })
        except ValueError as e:
            file_path.unlink(missing_ok=True)
            return envelope(error=str(e), status=400)
        except (StoreError, OSError) as e:
            logger.error(f"Erro no upload: {e}")
            file_path.unlink(missing_ok=True)
            return envelope(error=str(e), status=500)

        logger.info(f"Arquivo salvo: {midia.arquivo_url}")
        return envelope(midia.to_dict())

    @app.route("/api/diario-midia", methods=["POST"])
    def register_midia():
        """Registra mídia sem arquivo (apenas metadados)."""
        dados = request.get_json(silent=True)
        if not isinstance(dados, dict):
            return envelope(error="Corpo da requisição inválido", status=400)
        try:
            return envelope(store.add_midia(dados).to_dict())
        except ValueError as e:
            return envelope(error=str(e), status=400)
        except StoreError as e:
            logger.error(f"Erro ao registrar mídia: {e}")
            return envelope(error=str(e), status=500)

    @app.route("/api/diario-evento/<evento_id>/transcricao", methods=["PATCH"])
    def update_transcricao(evento_id: str):
        dados = request.get_json(silent=True) or {}
        try:
            evento = store.update_transcricao(
                evento_id,
                detalhe=dados.get("detalhe", UNSET),
                observacao=dados.get("observacao", UNSET),
            )
        except ValueError as e:
            return envelope(error=str(e), status=400)
        except StoreError as e:
            logger.error(f"Erro ao atualizar transcrição: {e}")
            return envelope(error=str(e), status=500)

        if evento is None:
            return envelope(error="Evento não encontrado", status=404)
        return envelope(evento.to_dict(include_midias=False))

    @app.route("/api/diario-evento/<evento_id>/finalizar", methods=["PATCH"])
    def finalize_evento(evento_id: str):
        """Marca evento como SAVED."""
        try:
            evento = store.finalize_evento(evento_id)
        except StoreError as e:
            logger.error(f"Erro ao finalizar evento: {e}")
            return envelope(error=str(e), status=500)

        if evento is None:
            return envelope(error="Evento não encontrado", status=404)
        logger.info(f"Evento finalizado: {evento_id}")
        return envelope(evento.to_dict(include_midias=False))

    @app.route("/api/diario-evento/<evento_id>", methods=["DELETE"])
    def delete_evento(evento_id: str):
        """Exclui evento, suas mídias e os arquivos em disco."""
        try:
            paths = store.delete_evento(evento_id)
        except StoreError as e:
            logger.error(f"Erro ao excluir evento: {e}")
            return envelope(error=str(e), status=500)

        if paths is None:
            return envelope(error="Evento não encontrado", status=404)

        for path in paths:
            if not inside_uploads(path):
                logger.warning(f"Arquivo fora da pasta de uploads mantido: {path}")
                continue
            try:
                Path(path).unlink(missing_ok=True)
                logger.debug(f"Arquivo removido: {path}")
            except OSError as e:
                logger.warning(f"Falha ao remover arquivo {path}: {e}")

        return envelope({"deleted": True, "evento_id": evento_id})

    # ==========================================================================
    # Transcrição
    # ==========================================================================

    @app.route("/api/transcribe-audio", methods=["POST"])
    @require_transcription_slot
    def transcribe_audio():
        """Transcreve áudio e, se houver evento, grava o texto."""
        file = request.files.get("file")
        if file is None:
            return jsonify({"success": False, "error": "Nenhum arquivo de áudio enviado"}), 400

        evento_id = request.form.get("evento_id")
        tipo = request.form.get("tipo")
        language = request.form.get("language") or None

        logger.info(f"Transcrevendo {tipo or 'áudio'} do evento {evento_id or '-'}")

        try:
            result = transcriber.transcribe(
                file.read(),
                filename=file.filename or None,
                mime_type=file.mimetype,
                language=language,
            )
        except TranscriptionError as e:
            status = e.status_code if e.status_code in (400, 413) else 500
            body = {"success": False, "error": str(e)}
            if e.details:
                body["details"] = e.details
            return jsonify(body), status

        if evento_id and tipo:
            try:
                if store.set_transcricao(evento_id, tipo, result.text) is None:
                    logger.warning(f"Transcrição ({tipo}) não salva: evento {evento_id} não encontrado")
                else:
                    logger.info(f"Transcrição ({tipo}) salva para evento {evento_id}")
            except StoreError as e:
                logger.error(f"Erro ao salvar transcrição no banco: {e}")

        return jsonify({"success": True, "text": result.text})

    @app.route("/api/transcribe-retroativo", methods=["POST"])
    @require_transcription_slot
    def transcribe_retroativo():
        """Transcreve áudios de eventos que ainda não têm transcrição."""
        limit = request.args.get("limit", 50, type=int)
        try:
            eventos = store.pending_transcriptions(limit)
        except StoreError as e:
            logger.error(f"Erro ao buscar eventos pendentes: {e}")
            return jsonify({"error": str(e)}), 500

        processed = 0
        results = {}

        for evento in eventos:
            audios = {m.tipo: m for m in evento.midias if m.arquivo_path and inside_uploads(m.arquivo_path)}
            updates = {}
            try:
                detalhe = audios.get(TIPO_AUDIO_DETALHE)
                if detalhe and not evento.transcricao_detalhe:
                    updates["detalhe"] = transcriber.transcribe_file(
                        detalhe.arquivo_path, mime_type=detalhe.mime_type
                    ).text
                observacao = audios.get(TIPO_AUDIO_OBSERVACAO)
                if observacao and not evento.transcricao_observacao:
                    updates["observacao"] = transcriber.transcribe_file(
                        observacao.arquivo_path, mime_type=observacao.mime_type
                    ).text
            except (TranscriptionError, OSError) as e:
                logger.warning(f"Falha ao transcrever evento {evento.evento_id}: {e}")
                results[evento.evento_id] = {"error": str(e)}
                continue

            if not updates:
                continue
            try:
                store.update_transcricao(evento.evento_id, **updates)
            except StoreError as e:
                results[evento.evento_id] = {"error": str(e)}
                continue
            results[evento.evento_id] = {"updated": updates}
            processed += 1

        logger.info(f"Transcrição retroativa: {processed} eventos atualizados")
        return jsonify({"processed": processed, "results": results})

    @app.route("/uploads/<path:filename>", methods=["GET"])
    def serve_upload(filename: str):
        return send_from_directory(str(uploads_dir), filename)

    # ==========================================================================
    # FMEA Vivo
    # ==========================================================================

    @app.route("/api/fmea/monitor", methods=["GET"])
    def fmea_monitor():
        modo = request.args.get("modo")
        if modo and modo not in SIMULATION_MODES:
            return envelope(error=f"Modo inválido: {modo}", status=400)
        return envelope(board.monitor(modo))

    @app.route("/api/fmea/aprendendo", methods=["GET"])
    def fmea_aprendendo():
        return envelope(board.aprendendo())

    @app.route("/api/fmea/observacoes", methods=["POST"])
    def fmea_observacao():
        """Registra observação do operador sobre um evento de CEP."""
        dados = request.get_json(silent=True)
        if not isinstance(dados, dict) or not dados.get("event_id"):
            return envelope(error="event_id é obrigatório", status=400)
        if board.get_event(dados["event_id"]) is None:
            return envelope(error="Evento de CEP não encontrado", status=404)
        try:
            registro_id = board.add_observacao(dados)
        except ValueError as e:
            return envelope(error=str(e), status=400)
        return envelope({"registro_id": registro_id})

    # ==========================================================================
    # Logs
    # ==========================================================================

    @app.route("/api/logs", methods=["GET"])
    def get_logs():
        """Retorna logs da aplicação."""
        if log_handler is None:
            return jsonify({"success": False, "error": "Logs em memória desabilitados"}), 404

        level = request.args.get("level")
        limit = request.args.get("limit", 100, type=int)
        logger_filter = request.args.get("logger")

        return jsonify({
            "success": True,
            "logs": log_handler.query(level=level, limit=limit, logger_name=logger_filter),
            "stats": log_handler.stats(),
        })

    @app.route("/api/logs", methods=["DELETE"])
    def clear_logs():
        if log_handler is None:
            return jsonify({"success": False, "error": "Logs em memória desabilitados"}), 404
        log_handler.clear()
        logger.info("📋 Logs limpos via API")
        return jsonify({"success": True, "message": "Logs limpos"})

    @app.errorhandler(413)
    def too_large(e):
        return envelope(error="Arquivo excede o tamanho máximo permitido", status=413)

    return app


def run_standalone(config_path: Optional[str] = None, host: Optional[str] = None, port: Optional[int] = None):
    """
    Executa o servidor da API.

    Args:
        config_path: Caminho da configuração
        host: Host para binding (padrão da config)
        port: Porta do servidor (padrão da config)
    """
    config = load_config(config_path)
    host = host or config.web.host
    port = port or config.web.port

    app = create_app(config)
    print(f"Iniciando API do Diário de Bordo em http://{host}:{port}")
    print("Pressione Ctrl+C para parar")

    app.run(host=host, port=port, debug=False, threaded=True)
