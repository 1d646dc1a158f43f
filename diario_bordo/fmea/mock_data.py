"""
Dados estáticos do FMEA Vivo (demonstração).

Nada aqui é calculado: eventos de CEP, observações de operadores,
insights e a folha de PFMEA são fixos.
"""

EVENTS = [
    {
        "event_id": "EVT-00101",
        "processo": "Injeção de espuma",
        "linha": "L2",
        "equipamento": "Injetora PU-03",
        "variavel_cep": "Frequência do agitador",
        "unidade": "Hz",
        "valor_atual": 57.8,
        "LSE": 58.0,
        "LIE": 52.0,
        "status": "tendencia",
        "regra_cep": "tendencia_3_pontos_subindo",
        "modo_falha_sugerido": "Bolhas na espuma",
        "timestamp": "2025-01-14T10:42:00",
    },
    {
        "event_id": "EVT-00102",
        "processo": "Injeção de espuma",
        "linha": "L2",
        "equipamento": "Injetora PU-03",
        "variavel_cep": "Pressão de injeção",
        "unidade": "bar",
        "valor_atual": 145.0,
        "LSE": 160.0,
        "LIE": 130.0,
        "status": "normal",
        "regra_cep": "estabilizado",
        "modo_falha_sugerido": None,
        "timestamp": "2025-01-14T10:45:00",
    },
    {
        "event_id": "EVT-00103",
        "processo": "Injeção de espuma",
        "linha": "L2",
        "equipamento": "Injetora PU-03",
        "variavel_cep": "Temperatura do poliol",
        "unidade": "°C",
        "valor_atual": 23.1,
        "LSE": 27.0,
        "LIE": 23.0,
        "status": "tendencia",
        "regra_cep": "abaixo_do_esperado",
        "modo_falha_sugerido": "Densidade fora do padrão",
        "timestamp": "2025-01-14T11:02:00",
    },
    {
        "event_id": "EVT-00104",
        "processo": "Injeção de espuma",
        "linha": "L2",
        "equipamento": "Injetora PU-03",
        "variavel_cep": "Frequência do agitador",
        "unidade": "Hz",
        "valor_atual": 59.4,
        "LSE": 58.0,
        "LIE": 52.0,
        "status": "desvio",
        "regra_cep": "fora_do_limite",
        "modo_falha_sugerido": "Bolhas na espuma",
        "timestamp": "2025-01-14T11:20:00",
    },
]

OBSERVACOES = [
    {
        "registro_id": "OBS-00031",
        "event_id": "EVT-00101",
        "turno": "A",
        "timestamp": "2025-01-12T08:15:00",
        "percepcao": ["som_agitador", "bolha_visivel"],
        "causa_percebida": "ar_incorporado",
        "acao": {"ajuste": True, "frequencia_agitador_hz": 55.0},
        "resolveu": True,
    },
    {
        "registro_id": "OBS-00032",
        "event_id": "EVT-00104",
        "turno": "B",
        "timestamp": "2025-01-12T15:40:00",
        "percepcao": ["bolha_visivel", "brilho_aparencia"],
        "causa_percebida": "umidade_materia_prima",
        "acao": {"ajuste": False},
        "resolveu": None,
    },
    {
        "registro_id": "OBS-00033",
        "event_id": "EVT-00101",
        "turno": "B",
        "timestamp": "2025-01-13T09:05:00",
        "percepcao": ["som_agitador", "vibracao"],
        "causa_percebida": "frequencia_agitador_fora",
        "acao": {"ajuste": True, "frequencia_agitador_hz": 54.5},
        "resolveu": True,
    },
    {
        "registro_id": "OBS-00034",
        "event_id": "EVT-00103",
        "turno": "C",
        "timestamp": "2025-01-13T23:30:00",
        "percepcao": ["viscosidade"],
        "causa_percebida": "materia_prima_diferente",
        "acao": {"ajuste": True, "massa_g": 410},
        "resolveu": False,
    },
    {
        "registro_id": "OBS-00035",
        "event_id": "EVT-00104",
        "turno": "A",
        "timestamp": "2025-01-14T07:50:00",
        "percepcao": ["bolha_visivel", "som_agitador"],
        "causa_percebida": "pressao_injecao",
        "acao": {"ajuste": True, "pressao_injecao_bar": 138.0},
        "resolveu": True,
    },
    {
        "registro_id": "OBS-00036",
        "event_id": "EVT-00101",
        "turno": "B",
        "timestamp": "2025-01-14T14:10:00",
        "percepcao": ["bolha_visivel"],
        "causa_percebida": "ar_incorporado",
        "acao": {"ajuste": True, "frequencia_agitador_hz": 55.5},
        "resolveu": False,
    },
]

INSIGHTS = {
    "modo_falha": "Bolhas na espuma",
    "periodo": "Últimos 30 dias",
    "clusters": [
        {
            "cluster_id": "C1",
            "rotulo": "Agitador acelerado",
            "qtd_registros": 14,
            "sinais": ["som_agitador", "vibracao"],
            "causas_associadas": ["frequencia_agitador_fora", "ar_incorporado"],
        },
        {
            "cluster_id": "C2",
            "rotulo": "Matéria-prima úmida",
            "qtd_registros": 9,
            "sinais": ["bolha_visivel", "brilho_aparencia"],
            "causas_associadas": ["umidade_materia_prima"],
        },
        {
            "cluster_id": "C3",
            "rotulo": "Pós-setup",
            "qtd_registros": 5,
            "sinais": ["viscosidade"],
            "causas_associadas": ["setup_recente", "materia_prima_diferente"],
        },
    ],
    "recomendacao_causa_provavel": {
        "causa": "ar_incorporado",
        "confianca": 0.72,
        "explicacao_curta": [
            "Som do agitador relatado em 64% dos registros com bolha",
            "Ajuste de frequência resolveu 3 de 4 ocorrências",
            "Tendência de subida na frequência antes das ocorrências",
        ],
    },
    "knowledge_graph": {
        "nodes": [
            {"id": "s_som", "label": "Som do agitador", "tipo": "sinal"},
            {"id": "s_bolha", "label": "Bolha visível", "tipo": "sinal"},
            {"id": "c_ar", "label": "Ar incorporado", "tipo": "causa"},
            {"id": "c_umidade", "label": "Umidade matéria-prima", "tipo": "causa"},
            {"id": "a_agitador", "label": "Ajustar frequência agitador", "tipo": "acao"},
            {"id": "a_pressao", "label": "Reduzir pressão", "tipo": "acao"},
        ],
        "edges": [
            {"from": "s_som", "to": "c_ar", "weight": 11},
            {"from": "s_bolha", "to": "c_umidade", "weight": 7},
            {"from": "c_ar", "to": "a_agitador", "weight": 9},
            {"from": "c_umidade", "to": "a_pressao", "weight": 3},
            {"from": "a_agitador", "to": "s_som", "weight": 6},
            {"from": "a_pressao", "to": "s_bolha", "weight": 2},
        ],
    },
    "atualizacao_assistida_pfmea": {
        "status": "aguardando_aprovacao",
        "diff_texto": [
            "+ Causa: Frequência do agitador acima de 57 Hz (ar incorporado)",
            "+ Controle de detecção: alerta CEP de tendência na frequência",
            "~ Ocorrência: 4 -> 5",
        ],
        "acao_mock": "Atualização registrada para revisão do engenheiro de processo",
    },
}

PFMEA_BOLHAS = {
    "pfmea_id": "PFMEA-ESP-017",
    "revisao": "C",
    "modo_falha": "Bolhas na espuma",
    "efeito": "Rejeição visual do assento / retrabalho",
    "severidade": 6,
    "ocorrencia": 4,
    "deteccao": 5,
    "causas_conhecidas": [
        {"id": "CA-01", "descricao": "Ar incorporado por agitação excessiva"},
        {"id": "CA-02", "descricao": "Umidade na matéria-prima (poliol)"},
        {"id": "CA-03", "descricao": "Pressão de injeção acima do especificado"},
    ],
}
