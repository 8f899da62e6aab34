import os

# main.py exige estas variáveis no import
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['SECRET_KEY'] = 'chave-de-teste'

import json
from datetime import date

import pytest

from main import app as flask_app
from models import db, Aluno, DominioCognitivo, TemplateAvaliacao, TemplateItem, Turma, Usuario


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _usuario(nome, email, senha, perfil):
    usuario = Usuario(nome=nome, email=email, perfil=perfil)
    usuario.set_senha(senha)
    db.session.add(usuario)
    return usuario


@pytest.fixture
def dados(app):
    """Cenário básico: um usuário de cada perfil, duas turmas, alunos, domínios e um template."""
    admin = _usuario('Administrador', 'admin@metis.com', 'admin123', 'ADMIN')
    coord = _usuario('Clara Coordenadora', 'coord@metis.com', 'coord123', 'COORDENADOR')
    moderador = _usuario('Maria Moderadora', 'moderador@metis.com', 'mod123', 'MODERADOR')
    outro_mod = _usuario('Otávio Moderador', 'outro@metis.com', 'outro123', 'MODERADOR')
    db.session.flush()

    aurora = Turma(nome_turma='Aurora', moderador_id=moderador.id, turno='NOITE', horario='18:00')
    vespera = Turma(nome_turma='Véspera', moderador_id=outro_mod.id, turno='TARDE', horario='15:00')
    db.session.add_all([aurora, vespera])
    db.session.flush()

    ana = Aluno(nome='Ana Maria Silva', turma_id=aurora.id, data_nascimento=date(1950, 5, 10))
    joao = Aluno(nome='João Souza', turma_id=aurora.id)
    carlos = Aluno(nome='Carlos Lima', turma_id=vespera.id)
    db.session.add_all([ana, joao, carlos])

    dominios = {}
    for nome in ('Fluência verbal', 'Cultura', 'Interpretação', 'Atenção visual', 'Auto-percepção'):
        dominios[nome] = DominioCognitivo(nome=nome, pontuacao_maxima=10)
        db.session.add(dominios[nome])
    db.session.flush()

    template = TemplateAvaliacao(nome='Padrão 03/2025', mes_referencia=3, ano_referencia=2025, ativo=True)
    db.session.add(template)
    db.session.flush()
    itens = [
        TemplateItem(template_id=template.id, dominio_id=dominios['Fluência verbal'].id, titulo='Escritores',
                     tipo_resposta='NUMERO', ordem=1,
                     regra_pontuacao=json.dumps({'tipo': 'faixas', 'faixas': [
                         {'ate': 5, 'pontos': 4}, {'acima': 5, 'pontos': 8}]})),
        TemplateItem(template_id=template.id, dominio_id=dominios['Cultura'].id, titulo='Capital',
                     tipo_resposta='SIM_NAO', ordem=2,
                     regra_pontuacao=json.dumps({'tipo': 'sim_nao', 'sim': 10, 'nao': 0})),
        TemplateItem(template_id=template.id, dominio_id=dominios['Interpretação'].id, titulo='Texto',
                     tipo_resposta='OPCAO_UNICA', ordem=3,
                     regra_pontuacao=json.dumps({'tipo': 'mapa', 'mapa': {'Totalmente': 6, 'Pouco': 2}})),
        TemplateItem(template_id=template.id, dominio_id=dominios['Atenção visual'].id, titulo='Diferenças',
                     tipo_resposta='OPCAO_UNICA', ordem=4,
                     regra_pontuacao=json.dumps({'tipo': 'alternativa_correta', 'correta': 'B',
                                                 'pontos_correta': 10, 'pontos_errada': 0})),
        TemplateItem(template_id=template.id, dominio_id=dominios['Auto-percepção'].id, titulo='Memória',
                     tipo_resposta='ESCALA', ordem=5,
                     regra_pontuacao=json.dumps({'tipo': 'mapa', 'mapa': {'Boa': 4, 'Ruim': 2}})),
    ]
    db.session.add_all(itens)
    db.session.commit()

    return {
        'admin': admin, 'coord': coord, 'moderador': moderador, 'outro_mod': outro_mod,
        'aurora': aurora, 'vespera': vespera,
        'ana': ana, 'joao': joao, 'carlos': carlos,
        'dominios': dominios, 'template': template, 'itens': itens,
    }


def login(client, email, senha):
    resposta = client.post('/api/v1/login', json={'email': email, 'senha': senha})
    assert resposta.status_code == 200, resposta.get_json()
    return {'x-access-token': resposta.get_json()['token']}


@pytest.fixture
def auth(app, dados):
    """Cabeçalhos prontos por perfil. O login usa outro client para não deixar cookie no `client`."""
    login_client = app.test_client()
    return {
        'admin': login(login_client, 'admin@metis.com', 'admin123'),
        'coord': login(login_client, 'coord@metis.com', 'coord123'),
        'moderador': login(login_client, 'moderador@metis.com', 'mod123'),
        'outro_mod': login(login_client, 'outro@metis.com', 'outro123'),
    }
