"""
Quadro do FMEA Vivo: monitor de CEP simulado e resumo de aprendizado.
"""

import copy
import logging
import random
import threading
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from . import mock_data

logger = logging.getLogger(__name__)

MODE_NORMAL = "normal"
MODE_TENDENCIA = "tendencia"
MODE_DESVIO = "desvio"
SIMULATION_MODES = (MODE_NORMAL, MODE_TENDENCIA, MODE_DESVIO)

# Índice usado quando não há evento com o status do modo
_MODE_FALLBACK_INDEX = {MODE_NORMAL: 1, MODE_TENDENCIA: 0, MODE_DESVIO: 3}

CHART_POINTS = 10
OBSERVACAO_ID_OFFSET = 41


def _acao_key(acao: dict) -> Optional[str]:
    if acao.get("frequencia_agitador_hz"):
        return "ajustar_agitador"
    if acao.get("pressao_injecao_bar"):
        return "reduzir_pressao"
    if acao.get("massa_g"):
        return "ajustar_massa"
    return None


def validate_observacao(observacao: dict) -> None:
    """
    Confere o formato de uma observação antes de entrar no quadro.

    Raises:
        ValueError: percepcao fora de lista de textos, causa não textual,
            acao que não é objeto ou resolveu não booleano
    """
    percepcao = observacao.get("percepcao")
    if percepcao is not None and (
        not isinstance(percepcao, list) or not all(isinstance(p, str) for p in percepcao)
    ):
        raise ValueError("percepcao deve ser uma lista de textos")

    causa = observacao.get("causa_percebida")
    if causa is not None and not isinstance(causa, str):
        raise ValueError("causa_percebida deve ser texto")

    acao = observacao.get("acao")
    if acao is not None and not isinstance(acao, dict):
        raise ValueError("acao deve ser um objeto")

    resolveu = observacao.get("resolveu")
    if resolveu is not None and not isinstance(resolveu, bool):
        raise ValueError("resolveu deve ser verdadeiro, falso ou nulo")


def generate_chart_data(event: dict, rng: Optional[random.Random] = None) -> List[Dict]:
    """
    Pontos do mini gráfico de controle de um evento.

    Tendência/desvio sobem linearmente e terminam no valor atual;
    normal oscila dentro da faixa central.
    """
    rng = rng or random.Random()
    lie, lse = event["LIE"], event["LSE"]
    span = lse - lie
    trending = event["status"] in (MODE_TENDENCIA, MODE_DESVIO)

    bars = []
    for i in range(CHART_POINTS):
        if trending:
            value = lie + span * 0.3 + span * 0.5 * (i / (CHART_POINTS - 1))
            if i >= CHART_POINTS - 2:
                value = event["valor_atual"]
        else:
            value = lie + span * 0.4 + rng.random() * span * 0.2

        percent = (value - lie) / span * 100
        bars.append({
            "value": round(value, 3),
            "percent": min(percent, 100.0),
            "is_above": value > lse,
            "is_warning": value > lse - span * 0.1,
        })
    return bars


class FmeaBoard:
    """Estado em memória do FMEA Vivo (cópia dos dados estáticos)."""

    def __init__(self, turno: str = "B", simulation_mode: str = MODE_TENDENCIA):
        self.events = copy.deepcopy(mock_data.EVENTS)
        self.observacoes = copy.deepcopy(mock_data.OBSERVACOES)
        self.insights = mock_data.INSIGHTS
        self.pfmea = mock_data.PFMEA_BOLHAS
        self.turno = turno
        self.simulation_mode = simulation_mode
        self._lock = threading.Lock()

    def current_event(self, mode: Optional[str] = None) -> dict:
        """Evento exibido no monitor para o modo de simulação."""
        mode = mode or self.simulation_mode
        if mode not in SIMULATION_MODES:
            raise ValueError(f"Modo de simulação inválido: {mode}")

        for event in self.events:
            if event["status"] == mode:
                return event
        return self.events[_MODE_FALLBACK_INDEX[mode]]

    def get_event(self, event_id: str) -> Optional[dict]:
        return next((e for e in self.events if e["event_id"] == event_id), None)

    def get_observacao(self, registro_id: str) -> Optional[dict]:
        return next((o for o in self.observacoes if o["registro_id"] == registro_id), None)

    def add_observacao(self, observacao: dict) -> str:
        """Registra observação do operador e retorna o ID gerado."""
        validate_observacao(observacao)
        with self._lock:
            registro_id = f"OBS-{len(self.observacoes) + OBSERVACAO_ID_OFFSET:05d}"
            self.observacoes.append({
                **observacao,
                "registro_id": registro_id,
                "timestamp": datetime.now().isoformat(),
                "turno": observacao.get("turno") or self.turno,
            })
        logger.info(f"Observação registrada: {registro_id}")
        return registro_id

    def get_stats(self) -> dict:
        """Resumo para o FMEA Aprendendo."""
        percepcoes = Counter()
        causas = Counter()
        acoes: Dict[str, Dict[str, int]] = {}

        for obs in self.observacoes:
            percepcoes.update(obs.get("percepcao") or [])
            if obs.get("causa_percebida"):
                causas[obs["causa_percebida"]] += 1

            acao = obs.get("acao") or {}
            if acao.get("ajuste") and obs.get("resolveu") is not None:
                key = _acao_key(acao)
                if key:
                    entry = acoes.setdefault(key, {"total": 0, "resolveu": 0})
                    entry["total"] += 1
                    if obs["resolveu"]:
                        entry["resolveu"] += 1

        return {
            "total_registros": len(self.observacoes),
            "total_tendencias": sum(1 for e in self.events if e["status"] == MODE_TENDENCIA),
            "total_desvios": sum(1 for e in self.events if e["status"] == MODE_DESVIO),
            "top_percepcoes": percepcoes.most_common(5),
            "top_causas": causas.most_common(5),
            "acoes_efetivas": [{"acao": k, **v} for k, v in acoes.items()],
        }

    def monitor(self, mode: Optional[str] = None, rng: Optional[random.Random] = None) -> dict:
        event = self.current_event(mode)
        return {
            "event": event,
            "turno": self.turno,
            "chart": generate_chart_data(event, rng),
        }

    def aprendendo(self) -> dict:
        return {
            "stats": self.get_stats(),
            "insights": self.insights,
            "pfmea": self.pfmea,
        }
