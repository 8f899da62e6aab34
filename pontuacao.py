import json
import logging

from credenciais import remover_acentos

logger = logging.getLogger(__name__)

RESPOSTAS_SIM = ('sim', 's', 'true', '1')

# Prefixo do nome do domínio (sem acento) -> sufixo da coluna em Avaliacao.
PREFIXOS_DOMINIO = [
    ('fluencia', 'fluencia'),
    ('cultura', 'cultura'),
    ('interpretacao', 'interpretacao'),
    ('atencao', 'atencao'),
    ('auto', 'auto_percepcao'),
]
DOMINIOS = [sufixo for _, sufixo in PREFIXOS_DOMINIO]


def _para_float(valor):
    try:
        return float(str(valor).replace(',', '.'))
    except (TypeError, ValueError):
        return None


def calcular_pontuacao_item(valor_bruto, regra_json):
    """
    Aplica a regra de pontuação do item à resposta bruta.

    Tipos de regra suportados:
      faixas              {"faixas": [{"ate": 5, "pontos": 1}, {"acima": 5, "pontos": 2}]}
      sim_nao             {"sim": 1, "nao": 0}
      mapa                {"mapa": {"A": 2, "B": 1}}
      alternativa_correta {"correta": "B", "pontos_correta": 1, "pontos_errada": 0}

    Regra malformada ou resposta inválida valem 0.
    """
    try:
        regra = json.loads(regra_json) if isinstance(regra_json, str) else regra_json
        tipo = regra.get('tipo')
        valor = '' if valor_bruto is None else str(valor_bruto)

        if tipo == 'faixas':
            numero = _para_float(valor)
            if numero is None:
                return 0
            for faixa in regra.get('faixas', []):
                if faixa.get('ate') is not None and numero <= faixa['ate']:
                    return faixa['pontos']
                if faixa.get('acima') is not None and numero > faixa['acima']:
                    return faixa['pontos']
            return 0

        if tipo == 'sim_nao':
            if valor.lower().strip() in RESPOSTAS_SIM:
                return regra['sim']
            return regra['nao']

        if tipo == 'mapa':
            return regra.get('mapa', {}).get(valor, 0)

        if tipo == 'alternativa_correta':
            if valor.upper().strip() == str(regra['correta']).upper():
                return regra['pontos_correta']
            return regra['pontos_errada']

        logger.warning('Tipo de regra de pontuação desconhecido: %s', tipo)
        return 0
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning('Erro ao calcular pontuação: %s', e)
        return 0


def calcular_scores_por_dominio(respostas, dominios):
    """
    Soma as pontuações por domínio e normaliza para 0-10.

    respostas: [{'dominio_id': 1, 'pontuacao_item': 2.0}, ...]
    dominios:  [{'id': 1, 'pontuacao_maxima': 10}, ...]
    """
    scores = {}
    for dominio in dominios:
        scores[dominio['id']] = {
            'total': 0.0,
            'pontuacao_maxima': dominio['pontuacao_maxima'],
            'score_0a10': 0.0,
        }

    for resposta in respostas:
        if resposta['dominio_id'] in scores:
            scores[resposta['dominio_id']]['total'] += resposta['pontuacao_item'] or 0

    for score in scores.values():
        maximo = score['pontuacao_maxima'] or 0
        score['total'] = min(max(score['total'], 0.0), float(maximo))
        if score['total'] > 0 and maximo > 0:
            score['score_0a10'] = round(score['total'] / maximo * 10, 2)

    return scores


def calcular_score_total(scores_por_dominio):
    valores = [s['score_0a10'] for s in scores_por_dominio.values()]
    if not valores:
        return 0.0
    return round(sum(valores) / len(valores), 2)


def campo_do_dominio(nome):
    """'Auto-percepção' -> 'auto_percepcao'; None se o domínio não tiver coluna."""
    nome = remover_acentos(nome or '').lower()
    for prefixo, sufixo in PREFIXOS_DOMINIO:
        if prefixo in nome:
            return sufixo
    return None
