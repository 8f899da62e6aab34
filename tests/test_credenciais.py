import random

import pytest

from credenciais import (
    ALFABETO_ALUNO, ALFABETO_RESET, derivar_login, gerar_senha, gerar_senha_reset, primeiro_nome
)
from erros import ErroValidacao, LoginEsgotadoError


def test_senha_aluno_tem_seis_caracteres_do_alfabeto():
    senha = gerar_senha(6)
    assert len(senha) == 6
    assert all(c in ALFABETO_ALUNO for c in senha)


def test_senha_reset_evita_caracteres_ambiguos():
    senha = gerar_senha_reset(rng=random.Random(42))
    assert len(senha) == 8
    assert all(c in ALFABETO_RESET for c in senha)
    assert not set('0O1Iilo') & set(ALFABETO_RESET)


def test_senha_com_tamanho_invalido():
    with pytest.raises(ErroValidacao):
        gerar_senha(0)


def test_primeiro_nome_sem_acento_e_minusculo():
    assert primeiro_nome('  Élida   Souza ') == 'elida'
    assert primeiro_nome('JOÃO') == 'joao'


def test_login_sem_colisao():
    assert derivar_login('Ana Maria Silva', lambda login: False) == 'ana@metis'


def test_login_com_colisao_usa_sufixo_2_e_3():
    existentes = {'ana@metis'}
    assert derivar_login('Ana Maria Silva', existentes.__contains__) == 'ana2@metis'

    existentes.add('ana2@metis')
    assert derivar_login('Ana Maria Silva', existentes.__contains__) == 'ana3@metis'


def test_login_consulta_cada_tentativa():
    consultados = []

    def existe(login):
        consultados.append(login)
        return login in ('ana@metis', 'ana2@metis')

    derivar_login('Ana', existe)
    assert consultados == ['ana@metis', 'ana2@metis', 'ana3@metis']


def test_login_esgotado_termina_com_erro():
    with pytest.raises(LoginEsgotadoError):
        derivar_login('Ana', lambda login: True, limite=5)


def test_login_de_nome_vazio():
    with pytest.raises(ErroValidacao):
        derivar_login('   ', lambda login: False)


def test_login_com_dominio_configurado():
    assert derivar_login('Zoë', lambda login: False, dominio='@escola') == 'zoe@escola'
