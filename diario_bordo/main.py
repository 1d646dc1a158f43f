#!/usr/bin/env python3
"""
Diário de Bordo - Ponto de entrada principal.

Uso:
    diario-bordo --serve                     # API HTTP
    diario-bordo --meter                     # Medidor de nível ao vivo
    diario-bordo --registrar ETIQUETA        # Registrar relato de um refugo
    diario-bordo --importar-refugos refugos.csv
    diario-bordo --test                      # Teste rápido
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from .audio.capture import DeviceUnavailableError, MicrophoneCapture
from .audio.meter_renderer import MeterFrame, format_meter_line
from .audio.session import RecordingSession
from .client import DiarioApiClient
from .pipeline import DiarioPipeline, MediaFile, RegistroError, RegistroResult
from .transcription import get_transcriber
from .utils.config import Config, load_config
from .utils.diario_store import DiarioStore, StoreError


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configura logging."""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )


def create_session(config: Config, label: str = "") -> RecordingSession:
    """Sessão de gravação com o medidor desenhado no terminal."""
    capture = MicrophoneCapture(
        device=config.audio.device,
        sample_rate=config.audio.sample_rate,
        channels=config.audio.channels,
        chunk_size=config.audio.chunk_size,
        analyser_size=config.audio.meter.analyser_size,
        max_duration=config.audio.max_duration,
    )

    def draw(frame: MeterFrame):
        sys.stdout.write("\r" + format_meter_line(frame, label) + "   ")
        sys.stdout.flush()

    return RecordingSession(capture, on_frame=draw, settings=config.audio.meter)


def print_result(result: RegistroResult) -> None:
    """Imprime resultado formatado."""
    print("\n" + "=" * 60)
    print("REGISTRO SALVO")
    print("=" * 60)
    print(f"\n🏷️  Etiqueta: {result.etiqueta}")
    print(f"🆔 Evento: {result.evento_id}")
    print(f"📎 Arquivos enviados: {result.uploads}")

    if result.transcricoes.get("detalhe"):
        print(f"\n📝 O que aconteceu:")
        print(f"   {result.transcricoes['detalhe']}")
    if result.transcricoes.get("observacao"):
        print(f"\n👀 O que você percebeu:")
        print(f"   {result.transcricoes['observacao']}")

    print("\n" + "=" * 60)


def meter_mode(config: Config) -> None:
    """Medidor de nível ao vivo até Ctrl+C."""
    print("\n🎚️  Medidor de nível do microfone")
    print("Pressione Ctrl+C para parar\n")

    session = create_session(config)
    try:
        session.start()
    except DeviceUnavailableError as e:
        print(f"❌ Microfone indisponível: {e}")
        sys.exit(1)

    try:
        while session.is_capturing:
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("\n\nInterrompido pelo usuário")
    finally:
        session.stop()


def record_memo(config: Config, prompt: str) -> Optional[MediaFile]:
    """
    Grava um relato com o medidor ao vivo.

    Returns:
        Áudio gravado, ou None se o operador pular
    """
    print(f"\n🎙️  {prompt}")
    cmd = input("> ENTER para gravar (p=pular): ").strip().lower()
    if cmd == "p":
        return None

    session = create_session(config, label="🔴")
    session.start()
    try:
        input()
    except KeyboardInterrupt:
        print()
    recording = session.stop()

    print(f"\r✅ Gravado ({recording.duration:.1f}s)" + " " * 40)
    return MediaFile.from_audio(recording)


def registrar_mode(config: Config, etiqueta: str, foto_path: Optional[str], rapido: bool) -> None:
    """Fluxo do operador: consulta etiqueta, grava relatos e salva."""
    with DiarioApiClient(config.web.api_url, transcription_timeout=config.transcription.timeout) as client:
        pipeline = DiarioPipeline(client, config.operator)

        try:
            refugo = pipeline.buscar_refugo(etiqueta)
        except RegistroError as e:
            print(f"❌ {e}")
            sys.exit(1)

        print(f"\n🏷️  {refugo.get('etiqueta')} - {refugo.get('nome_produto') or '-'}")
        print(f"   Defeito: {refugo.get('cod_defeito') or '-'} {refugo.get('desc_defeito') or ''}")
        print(f"   OP: {refugo.get('op') or '-'}  Turno: {refugo.get('turno') or '-'}")
        print("   (durante a gravação, ENTER para parar)")

        try:
            detalhe = record_memo(config, "O que aconteceu?")
            observacao = None
            if not rapido:
                observacao = record_memo(config, "O que você percebeu de diferente?")
        except DeviceUnavailableError as e:
            print(f"❌ Microfone indisponível: {e}")
            sys.exit(1)

        foto = MediaFile.from_path(foto_path) if foto_path else None

        if not pipeline.is_valid(detalhe, observacao, rapido):
            print("❌ Grave o detalhe e a observação (ou use --rapido)")
            sys.exit(1)

        try:
            result = pipeline.save(
                refugo,
                detalhe=detalhe,
                observacao=observacao,
                foto=foto,
                quick_observacao=rapido,
                on_status=lambda msg: print(f"⏳ {msg}"),
            )
        except RegistroError as e:
            print(f"❌ Erro ao salvar registro: {e}")
            sys.exit(1)

        print_result(result)


def import_mode(config: Config, csv_path: str) -> None:
    """Importa refugos de um CSV exportado da view."""
    if not Path(csv_path).exists():
        print(f"❌ Arquivo não encontrado: {csv_path}")
        sys.exit(1)

    store = DiarioStore(str(config.database_path))
    count = store.import_refugos_csv(csv_path)
    print(f"✅ {count} refugos importados para {store.db_path}")


def test_mode(config: Config) -> None:
    """Teste rápido do sistema."""
    print("\n🧪 Teste do sistema")
    print("=" * 40)

    meter = config.audio.meter
    print(f"\n✅ Áudio: sample_rate={config.audio.sample_rate}, barras={meter.bar_count}, tick={meter.update_interval_ms}ms")

    try:
        store = DiarioStore(str(config.database_path))
        store.test_connection()
        print(f"✅ Banco: {store.db_path}")
    except StoreError as e:
        print(f"❌ Erro no banco: {e}")

    transcriber = get_transcriber(config.transcription)
    if transcriber.is_configured:
        print(f"✅ Transcrição: {config.transcription.model} ({config.transcription.language})")
    else:
        print("⚠️  Transcrição: OPENAI_API_KEY não configurada")

    try:
        devices = MicrophoneCapture(device=config.audio.device).list_devices()
        print(f"✅ Microfones disponíveis: {len(devices)}")
        for d in devices[:3]:
            print(f"   - {d['name']}")
    except DeviceUnavailableError as e:
        print(f"❌ Erro de áudio: {e}")

    with DiarioApiClient(config.web.api_url, timeout=5.0) as client:
        health = client.health_check()
        if health.get("status") == "ok":
            conexao = client.test_connection()
            banco = "OK" if conexao.get("success") else conexao.get("message")
            print(f"✅ API: {config.web.api_url} (banco: {banco})")
        else:
            print(f"⚠️  API indisponível em {config.web.api_url}: {health.get('error')}")

    print("\n🎯 Sistema pronto para uso!")


def main():
    """Função principal."""
    parser = argparse.ArgumentParser(
        description="Diário de Bordo - relatos de refugo por voz",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config",
        help="Caminho do arquivo de configuração",
        default=None,
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Iniciar a API HTTP",
    )
    parser.add_argument("--host", help="Host da API (padrão da configuração)")
    parser.add_argument("--port", type=int, help="Porta da API (padrão da configuração)")
    parser.add_argument(
        "--meter",
        action="store_true",
        help="Mostrar medidor de nível do microfone",
    )
    parser.add_argument(
        "--registrar",
        metavar="ETIQUETA",
        help="Registrar relato para a etiqueta do refugo",
    )
    parser.add_argument(
        "--foto",
        metavar="ARQUIVO",
        help="Foto do refugo (com --registrar)",
    )
    parser.add_argument(
        "--rapido",
        action="store_true",
        help="Observação rápida: \"Não vi nada de diferente\"",
    )
    parser.add_argument(
        "--importar-refugos",
        metavar="CSV",
        help="Importar refugos de arquivo CSV",
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Executar teste do sistema",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Output detalhado",
    )

    args = parser.parse_args()

    # Carregar configuração
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"❌ Erro: {e}")
        print("Execute: cp config/config.example.yaml config/config.yaml")
        sys.exit(1)

    log_level = "DEBUG" if args.verbose else config.system.log_level
    setup_logging(log_level, config.system.log_file or None)

    if args.serve:
        from .web.server import run_standalone
        run_standalone(args.config, host=args.host, port=args.port)
    elif args.meter:
        meter_mode(config)
    elif args.registrar:
        registrar_mode(config, args.registrar, args.foto, args.rapido)
    elif args.importar_refugos:
        import_mode(config, args.importar_refugos)
    elif args.test:
        test_mode(config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
