"""
Cálculo de tendência por domínio cognitivo.

Recebe as avaliações (dicionários) já ordenadas por (ano, mes) crescente e
devolve, para cada campo de score, o valor atual, o valor de referência, a
variação e a classificação (melhora, estavel ou queda).
"""

LIMIAR_PADRAO = 0.5
JANELA_PADRAO = 6

# Ordem fixa dos cards: Total primeiro, depois os cinco domínios.
CAMPOS_TENDENCIA = [
    ('score_total', 'Total'),
    ('score_fluencia', 'Fluência'),
    ('score_cultura', 'Cultura'),
    ('score_interpretacao', 'Interpretação'),
    ('score_atencao', 'Atenção'),
    ('score_auto_percepcao', 'Auto-percepção'),
]


def classificar_variacao(variacao, limiar=LIMIAR_PADRAO):
    if variacao > limiar:
        return 'melhora'
    if variacao < -limiar:
        return 'queda'
    return 'estavel'


def indice_referencia(tamanho, janela=JANELA_PADRAO):
    # Sem histórico suficiente a referência cai no primeiro elemento.
    return max(0, tamanho - janela - 1)


def calcular_ponto(dominio, valores, janela=JANELA_PADRAO, limiar=LIMIAR_PADRAO):
    """
    TrendPoint de uma série crescente de valores.
    Série vazia devolve None.
    """
    if not valores:
        return None
    atual = float(valores[-1] or 0)
    anterior = float(valores[indice_referencia(len(valores), janela)] or 0)
    variacao = round(atual - anterior, 2)
    return {
        'dominio': dominio,
        'atual': atual,
        'anterior': anterior,
        'variacao': variacao,
        'tendencia': classificar_variacao(variacao, limiar),
    }


def calcular_tendencias(avaliacoes, janela=JANELA_PADRAO, limiar=LIMIAR_PADRAO):
    """Seis TrendPoints (Total + cinco domínios) sobre a mesma lista de avaliações."""
    if not avaliacoes:
        return []
    pontos = []
    for campo, rotulo in CAMPOS_TENDENCIA:
        valores = [a.get(campo) or 0 for a in avaliacoes]
        pontos.append(calcular_ponto(rotulo, valores, janela, limiar))
    return pontos
