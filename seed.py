# -*- coding: utf-8 -*-
"""
Popula o banco com dados de desenvolvimento: usuários, turmas, alunos,
domínios cognitivos e um template de avaliação com itens.

Uso:  python seed.py   (com DATABASE_URL e SECRET_KEY definidos no .env)
"""
import json

from werkzeug.security import generate_password_hash

from models import db, Aluno, DominioCognitivo, TemplateAvaliacao, TemplateItem, Turma, Usuario


def find_or_create(model, defaults=None, **kwargs):
    """Busca um registro pelos filtros; se não existir, cria com filtros + defaults."""
    instance = model.query.filter_by(**kwargs).first()
    if instance:
        print(f"INFO: Encontrado '{model.__name__}' com {kwargs}")
        return instance, False

    print(f"INFO: Criando '{model.__name__}' com {kwargs}")
    params = dict(kwargs)
    params.update(defaults or {})
    instance = model(**params)
    db.session.add(instance)
    db.session.flush()
    return instance, True


def _faixas(*faixas):
    return json.dumps({'tipo': 'faixas', 'faixas': list(faixas)})


def _mapa(mapa):
    return json.dumps({'tipo': 'mapa', 'mapa': mapa}, ensure_ascii=False)


ESCALA_AUTO = {'Excelente': 5, 'Boa': 4, 'Regular': 3, 'Ruim': 2, 'Muito ruim': 1}

# --- DADOS DE EXEMPLO ---
usuarios_data = [
    {'nome': 'Administrador', 'email': 'admin@metis.com', 'senha': 'admin123', 'perfil': 'ADMIN'},
    {'nome': 'Maria Moderadora', 'email': 'moderador@metis.com', 'senha': 'mod123', 'perfil': 'MODERADOR'},
]

turmas_data = [
    {'nome_turma': 'Aurora – Segunda 18h', 'dia_semana': 'Segunda-feira', 'horario': '18:00', 'turno': 'NOITE'},
    {'nome_turma': 'Véspera – Quarta 15h', 'dia_semana': 'Quarta-feira', 'horario': '15:00', 'turno': 'TARDE'},
]

alunos_data = [
    ('João Silva', 'Aurora – Segunda 18h'),
    ('Maria Santos', 'Aurora – Segunda 18h'),
    ('Pedro Oliveira', 'Aurora – Segunda 18h'),
    ('Ana Costa', 'Véspera – Quarta 15h'),
    ('Carlos Souza', 'Véspera – Quarta 15h'),
]

dominios_data = [
    {'nome': 'Fluência verbal', 'descricao': 'Capacidade de produzir palavras rapidamente'},
    {'nome': 'Cultura & memória semântica', 'descricao': 'Conhecimento geral e memória de fatos'},
    {'nome': 'Interpretação', 'descricao': 'Compreensão e análise de informações'},
    {'nome': 'Atenção visual', 'descricao': 'Foco e concentração em estímulos visuais'},
    {'nome': 'Auto-percepção', 'descricao': 'Consciência sobre o próprio desempenho'},
]

itens_data = [
    {'dominio': 'Fluência verbal', 'codigo_item': 'Q1_escritores_qtd', 'titulo': 'Quantidade de escritores citados',
     'descricao': 'Quantos escritores o aluno conseguiu citar em 1 minuto?', 'tipo_resposta': 'NUMERO',
     'regra_pontuacao': _faixas({'ate': 5, 'pontos': 1}, {'ate': 10, 'pontos': 2}, {'acima': 10, 'pontos': 3})},
    {'dominio': 'Fluência verbal', 'codigo_item': 'Q2_cantores_qtd', 'titulo': 'Quantidade de cantores citados',
     'descricao': 'Quantos cantores o aluno conseguiu citar em 1 minuto?', 'tipo_resposta': 'NUMERO',
     'regra_pontuacao': _faixas({'ate': 5, 'pontos': 1}, {'ate': 10, 'pontos': 2}, {'acima': 10, 'pontos': 3})},
    {'dominio': 'Cultura & memória semântica', 'codigo_item': 'Q3_capital_brasil', 'titulo': 'Qual a capital do Brasil?',
     'descricao': 'Resposta correta: Brasília', 'tipo_resposta': 'SIM_NAO',
     'regra_pontuacao': json.dumps({'tipo': 'sim_nao', 'sim': 1, 'nao': 0})},
    {'dominio': 'Cultura & memória semântica', 'codigo_item': 'Q4_presidente_atual',
     'titulo': 'Quem é o presidente atual do Brasil?', 'descricao': 'Resposta correta: Sim', 'tipo_resposta': 'SIM_NAO',
     'regra_pontuacao': json.dumps({'tipo': 'sim_nao', 'sim': 1, 'nao': 0})},
    {'dominio': 'Interpretação', 'codigo_item': 'Q5_texto_compreensao', 'titulo': 'Compreendeu o texto apresentado?',
     'descricao': 'Após leitura de um texto curto', 'tipo_resposta': 'OPCAO_UNICA',
     'config_opcoes': json.dumps(['Totalmente', 'Parcialmente', 'Pouco', 'Não compreendeu'], ensure_ascii=False),
     'regra_pontuacao': _mapa({'Totalmente': 3, 'Parcialmente': 2, 'Pouco': 1, 'Não compreendeu': 0})},
    {'dominio': 'Atenção visual', 'codigo_item': 'Q6_encontrar_diferenca',
     'titulo': 'Conseguiu encontrar as diferenças na imagem?', 'descricao': 'Número de diferenças encontradas (máximo 5)',
     'tipo_resposta': 'NUMERO',
     'regra_pontuacao': _faixas({'ate': 2, 'pontos': 1}, {'ate': 4, 'pontos': 2}, {'acima': 4, 'pontos': 3})},
    {'dominio': 'Auto-percepção', 'codigo_item': 'Q7_auto_avaliacao_memoria', 'titulo': 'Como você avalia sua memória?',
     'descricao': 'Auto-percepção do aluno sobre sua memória', 'tipo_resposta': 'ESCALA',
     'config_opcoes': json.dumps(list(ESCALA_AUTO)), 'regra_pontuacao': _mapa(ESCALA_AUTO)},
    {'dominio': 'Auto-percepção', 'codigo_item': 'Q8_auto_avaliacao_atencao', 'titulo': 'Como você avalia sua atenção?',
     'descricao': 'Auto-percepção do aluno sobre sua atenção', 'tipo_resposta': 'ESCALA',
     'config_opcoes': json.dumps(list(ESCALA_AUTO)), 'regra_pontuacao': _mapa(ESCALA_AUTO)},
]


def run_seed():
    """Insere os dados de exemplo; pode ser executado mais de uma vez."""
    print("Iniciando seed do banco de dados...")

    # 1. Usuários
    usuarios = {}
    for u in usuarios_data:
        # senha_hash é obrigatório, então o hash entra antes do flush
        usuario, _ = find_or_create(Usuario, email=u['email'], defaults={
            'nome': u['nome'], 'perfil': u['perfil'],
            'senha_hash': generate_password_hash(u['senha'], method='pbkdf2:sha256'),
        })
        usuarios[u['perfil']] = usuario

    # 2. Turmas, todas com a mesma moderadora
    turmas = {}
    for t in turmas_data:
        dados = dict(t, moderador_id=usuarios['MODERADOR'].id)
        turma, _ = find_or_create(Turma, nome_turma=dados.pop('nome_turma'), defaults=dados)
        turmas[turma.nome_turma] = turma

    # 3. Alunos
    for nome, nome_turma in alunos_data:
        find_or_create(Aluno, nome=nome, turma_id=turmas[nome_turma].id,
                       defaults={'observacoes': 'Aluno participativo'})

    # 4. Domínios
    dominios = {}
    for d in dominios_data:
        dominio, _ = find_or_create(DominioCognitivo, nome=d['nome'],
                                    defaults={'descricao': d['descricao'], 'pontuacao_maxima': 10})
        dominios[dominio.nome] = dominio

    # 5. Template e itens
    template, _ = find_or_create(
        TemplateAvaliacao, nome='Avaliação Cognitiva Padrão – Novembro/2024',
        defaults={'mes_referencia': 11, 'ano_referencia': 2024, 'ativo': True,
                  'observacoes': 'Template de exemplo para novembro de 2024'},
    )
    for ordem, item in enumerate(itens_data, start=1):
        dados = dict(item)
        dominio = dominios[dados.pop('dominio')]
        find_or_create(TemplateItem, template_id=template.id, codigo_item=dados.pop('codigo_item'),
                       defaults=dict(dados, dominio_id=dominio.id, ordem=ordem))

    db.session.commit()

    print("-" * 50)
    print("Seed concluído com sucesso!")
    print("Credenciais de acesso:")
    print("   Admin: admin@metis.com / admin123")
    print("   Moderador: moderador@metis.com / mod123")
    print("-" * 50)


# Ponto de entrada para executar o script
if __name__ == '__main__':
    from main import app

    with app.app_context():
        db.create_all()
        run_seed()
