import json

import pytest

from pontuacao import (
    calcular_pontuacao_item, calcular_score_total, calcular_scores_por_dominio, campo_do_dominio
)

FAIXAS = json.dumps({'tipo': 'faixas', 'faixas': [
    {'ate': 5, 'pontos': 1}, {'ate': 10, 'pontos': 2}, {'acima': 10, 'pontos': 3}]})


@pytest.mark.parametrize('valor, esperado', [
    ('3', 1), (5, 1), ('7,5', 2), ('10', 2), ('11', 3), ('abc', 0), (None, 0),
])
def test_regra_de_faixas(valor, esperado):
    assert calcular_pontuacao_item(valor, FAIXAS) == esperado


def test_regra_sim_nao():
    regra = {'tipo': 'sim_nao', 'sim': 2, 'nao': 0}
    assert calcular_pontuacao_item('Sim', regra) == 2
    assert calcular_pontuacao_item(' s ', regra) == 2
    assert calcular_pontuacao_item('true', regra) == 2
    assert calcular_pontuacao_item('não', regra) == 0


def test_regra_de_mapa_diferencia_maiusculas():
    regra = json.dumps({'tipo': 'mapa', 'mapa': {'Totalmente': 3, 'Pouco': 1}})
    assert calcular_pontuacao_item('Totalmente', regra) == 3
    assert calcular_pontuacao_item('totalmente', regra) == 0


def test_alternativa_correta_ignora_caixa():
    regra = json.dumps({'tipo': 'alternativa_correta', 'correta': 'B', 'pontos_correta': 1, 'pontos_errada': 0})
    assert calcular_pontuacao_item('b', regra) == 1
    assert calcular_pontuacao_item('C', regra) == 0


@pytest.mark.parametrize('regra', [
    '{isto não é json', json.dumps({'tipo': 'desconhecido'}), json.dumps(['faixas']),
    json.dumps({'tipo': 'sim_nao'}),
])
def test_regra_malformada_vale_zero(regra):
    assert calcular_pontuacao_item('sim', regra) == 0


def test_scores_por_dominio_limitam_ao_maximo():
    dominios = [{'id': 1, 'pontuacao_maxima': 10}, {'id': 2, 'pontuacao_maxima': 4}, {'id': 3, 'pontuacao_maxima': 0}]
    respostas = [
        {'dominio_id': 1, 'pontuacao_item': 3},
        {'dominio_id': 1, 'pontuacao_item': 4},
        {'dominio_id': 2, 'pontuacao_item': 9},
        {'dominio_id': 3, 'pontuacao_item': 5},
        {'dominio_id': 99, 'pontuacao_item': 5},
    ]
    scores = calcular_scores_por_dominio(respostas, dominios)
    assert scores[1]['total'] == 7.0
    assert scores[1]['score_0a10'] == 7.0
    assert scores[2]['total'] == 4.0
    assert scores[2]['score_0a10'] == 10.0
    assert scores[3]['score_0a10'] == 0.0
    assert 99 not in scores


def test_score_negativo_vira_zero():
    scores = calcular_scores_por_dominio([{'dominio_id': 1, 'pontuacao_item': -3}], [{'id': 1, 'pontuacao_maxima': 10}])
    assert scores[1]['total'] == 0.0


def test_score_total_e_media_dos_dominios():
    scores = {1: {'score_0a10': 4.0}, 2: {'score_0a10': 10.0}, 3: {'score_0a10': 6.0},
              4: {'score_0a10': 10.0}, 5: {'score_0a10': 4.0}}
    assert calcular_score_total(scores) == 6.8
    assert calcular_score_total({}) == 0.0


@pytest.mark.parametrize('nome, campo', [
    ('Fluência verbal', 'fluencia'),
    ('Cultura geral', 'cultura'),
    ('Interpretação', 'interpretacao'),
    ('Atenção visual', 'atencao'),
    ('Auto-percepção', 'auto_percepcao'),
    ('Memória', None),
])
def test_campo_do_dominio(nome, campo):
    assert campo_do_dominio(nome) == campo
