from datetime import date

from sqlalchemy import and_, or_, true

from erros import ErroValidacao

PERIODOS = {
    '1m': 1,
    '3m': 3,
    '6m': 6,
    '12m': 12,
    'all': None,
}

TEXTOS_PERIODO = {
    '1m': 'no último mês',
    '3m': 'nos últimos 3 meses',
    '6m': 'nos últimos 6 meses',
    '12m': 'no último ano',
    'all': 'em todo o histórico',
}


def validar_periodo(periodo):
    if periodo not in PERIODOS:
        raise ErroValidacao('Período inválido', detalhes={'periodo': periodo, 'validos': list(PERIODOS)})
    return periodo


def calcular_data_inicio(periodo, hoje=None):
    """
    Primeiro dia do mês que abre a janela do período.

    Meses de calendário, não dias: '3m' em 15/03/2025 -> 01/12/2024.
    'all' não tem limite e devolve None.
    """
    meses = PERIODOS[validar_periodo(periodo)]
    if meses is None:
        return None
    hoje = hoje or date.today()
    indice = hoje.year * 12 + (hoje.month - 1) - meses
    return date(indice // 12, indice % 12 + 1, 1)


def predicado_periodo(data_inicio):
    """Devolve uma função (ano, mes) -> bool que diz se o mês está na janela."""
    if data_inicio is None:
        return lambda ano, mes: True

    def dentro(ano, mes):
        return ano > data_inicio.year or (ano == data_inicio.year and mes >= data_inicio.month)
    return dentro


def clausula_periodo(data_inicio, coluna_ano, coluna_mes):
    """Mesmo critério de predicado_periodo, como expressão para query.filter()."""
    if data_inicio is None:
        return true()
    return or_(
        coluna_ano > data_inicio.year,
        and_(coluna_ano == data_inicio.year, coluna_mes >= data_inicio.month),
    )


def meses_do_periodo(periodo, total=None):
    """Quantidade de meses coberta; em 'all' usa `total` (ou 12)."""
    meses = PERIODOS[validar_periodo(periodo)]
    if meses is None:
        return total or 12
    return meses


def formatar_periodo_texto(periodo):
    return TEXTOS_PERIODO.get(periodo, 'no período selecionado')
