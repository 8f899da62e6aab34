from conftest import login
from models import AuditLog, Avaliacao, Usuario

API = '/api/v1'


def _criar_avaliacao(client, headers, aluno_id, template_id, mes=3, ano=2025):
    return client.post(f'{API}/avaliacoes', headers=headers, json={
        'aluno_id': aluno_id, 'template_id': template_id, 'mes_referencia': mes, 'ano_referencia': ano,
    })


def _respostas_padrao(itens):
    valores = ['3', 'sim', 'Totalmente', 'b', 'Boa']
    return {str(item.id): valor for item, valor in zip(itens, valores)}


def _avaliacao_concluida(client, auth, dados):
    resposta = _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id)
    assert resposta.status_code == 201
    avaliacao_id = resposta.get_json()['id']
    resposta = client.put(f'{API}/avaliacoes/{avaliacao_id}/respostas', headers=auth['admin'],
                          json={'respostas': _respostas_padrao(dados['itens']), 'data_aplicacao': '2025-03-12'})
    assert resposta.status_code == 200, resposta.get_json()
    return avaliacao_id


# --- Autenticação ---

def test_login_devolve_token_e_cookie(client, dados):
    resposta = client.post(f'{API}/login', json={'email': 'ADMIN@metis.com', 'senha': 'admin123'})
    assert resposta.status_code == 200
    assert resposta.get_json()['token']
    assert resposta.get_json()['usuario']['perfil'] == 'ADMIN'

    # O cookie gravado no login basta para as próximas chamadas
    perfil = client.get(f'{API}/perfil')
    assert perfil.status_code == 200
    assert perfil.get_json()['email'] == 'admin@metis.com'


def test_login_com_senha_errada(client, dados):
    resposta = client.post(f'{API}/login', json={'email': 'admin@metis.com', 'senha': 'errada'})
    assert resposta.status_code == 401
    assert resposta.get_json()['error'] == 'Credenciais inválidas'
    assert AuditLog.query.filter_by(action='LOGIN_FAILURE').count() == 1


def test_login_sem_campos(client, dados):
    resposta = client.post(f'{API}/login', json={'email': 'admin@metis.com'})
    assert resposta.status_code == 400
    assert 'senha' in resposta.get_json()['details']


def test_sem_token_responde_401(client, dados):
    resposta = client.get(f'{API}/perfil')
    assert resposta.status_code == 401
    assert 'error' in resposta.get_json()


def test_token_invalido(client, dados):
    resposta = client.get(f'{API}/perfil', headers={'x-access-token': 'nao-e-um-jwt'})
    assert resposta.status_code == 401


def test_alterar_senha(client, auth):
    resposta = client.post(f'{API}/alterar-senha', headers=auth['moderador'], json={
        'senha_atual': 'mod123', 'nova_senha': 'nova-senha', 'confirmar_senha': 'nova-senha'})
    assert resposta.status_code == 200
    login(client, 'moderador@metis.com', 'nova-senha')


def test_alterar_senha_com_senha_atual_errada(client, auth):
    resposta = client.post(f'{API}/alterar-senha', headers=auth['moderador'], json={
        'senha_atual': 'outra', 'nova_senha': 'nova-senha', 'confirmar_senha': 'nova-senha'})
    assert resposta.status_code == 400


# --- Perfis e escopo ---

def test_moderador_nao_cria_turma(client, auth):
    resposta = client.post(f'{API}/turmas', headers=auth['moderador'], json={'nome_turma': 'Nova turma'})
    assert resposta.status_code == 403


def test_coordenador_cria_turma(client, auth, dados):
    resposta = client.post(f'{API}/turmas', headers=auth['coord'], json={
        'nome_turma': 'Nova turma', 'turno': 'MANHA', 'horario': '09:30', 'moderador_id': dados['moderador'].id})
    assert resposta.status_code == 201
    assert resposta.get_json()['status'] == 'ABERTA'


def test_turma_com_moderador_invalido(client, auth, dados):
    resposta = client.post(f'{API}/turmas', headers=auth['coord'], json={
        'nome_turma': 'Nova turma', 'moderador_id': dados['coord'].id})
    assert resposta.status_code == 400


def test_moderador_ve_somente_a_propria_turma(client, auth, dados):
    turmas = client.get(f'{API}/turmas', headers=auth['moderador']).get_json()['turmas']
    assert [t['nome_turma'] for t in turmas] == ['Aurora']

    alunos = client.get(f'{API}/alunos', headers=auth['moderador']).get_json()['alunos']
    assert {a['nome'] for a in alunos} == {'Ana Maria Silva', 'João Souza'}

    assert client.get(f"{API}/alunos/{dados['carlos'].id}", headers=auth['moderador']).status_code == 404
    assert client.get(f"{API}/turmas/{dados['vespera'].id}", headers=auth['moderador']).status_code == 404


def test_remover_turma_com_alunos(client, auth, dados):
    resposta = client.delete(f"{API}/turmas/{dados['aurora'].id}", headers=auth['admin'])
    assert resposta.status_code == 409


def test_atualizacao_parcial_do_aluno(client, auth, dados):
    aluno_id = dados['joao'].id
    resposta = client.patch(f'{API}/alunos/{aluno_id}', headers=auth['coord'], json={'observacoes': ''})
    assert resposta.status_code == 200
    corpo = resposta.get_json()
    assert corpo['observacoes'] == ''
    assert corpo['nome'] == 'João Souza'


# --- Usuários e contas de aluno ---

def test_criar_usuario_do_aluno(client, auth, dados):
    resposta = client.post(f"{API}/alunos/{dados['ana'].id}/criar-usuario", headers=auth['admin'])
    assert resposta.status_code == 201
    corpo = resposta.get_json()
    assert corpo['login'] == 'ana@metis'
    assert len(corpo['senha']) == 6

    usuario = Usuario.query.filter_by(email='ana@metis').one()
    assert usuario.perfil == 'ALUNO'
    assert usuario.check_senha(corpo['senha'])

    repetido = client.post(f"{API}/alunos/{dados['ana'].id}/criar-usuario", headers=auth['admin'])
    assert repetido.status_code == 409


def test_login_de_homonimo_recebe_sufixo(client, auth, dados):
    client.post(f"{API}/alunos/{dados['ana'].id}/criar-usuario", headers=auth['admin'])
    novo = client.post(f'{API}/alunos', headers=auth['admin'], json={
        'nome': 'Ana Beatriz Rocha', 'turma_id': dados['vespera'].id})
    assert novo.status_code == 201

    resposta = client.post(f"{API}/alunos/{novo.get_json()['id']}/criar-usuario", headers=auth['admin'])
    assert resposta.get_json()['login'] == 'ana2@metis'


def test_resetar_senha_de_outro_admin_e_proibido(client, auth):
    novo = client.post(f'{API}/usuarios', headers=auth['admin'], json={
        'nome': 'Outra Administradora', 'email': 'admin2@metis.com', 'senha': 'segredo1', 'perfil': 'ADMIN'})
    assert novo.status_code == 201

    resposta = client.post(f"{API}/usuarios/{novo.get_json()['id']}/resetar-senha", headers=auth['admin'])
    assert resposta.status_code == 403


def test_resetar_senha_de_moderador(client, auth, dados):
    resposta = client.post(f"{API}/usuarios/{dados['moderador'].id}/resetar-senha", headers=auth['admin'])
    assert resposta.status_code == 200
    senha = resposta.get_json()['senha_provisoria']
    assert len(senha) == 8
    login(client, 'moderador@metis.com', senha)


def test_email_duplicado(client, auth):
    resposta = client.post(f'{API}/usuarios', headers=auth['admin'], json={
        'nome': 'Repetido', 'email': 'coord@metis.com', 'perfil': 'COORDENADOR'})
    assert resposta.status_code == 409


# --- Avaliações ---

def test_criar_avaliacao_e_duplicada(client, auth, dados):
    resposta = _criar_avaliacao(client, auth['moderador'], dados['ana'].id, dados['template'].id)
    assert resposta.status_code == 201
    assert resposta.get_json()['status'] == 'RASCUNHO'

    repetida = _criar_avaliacao(client, auth['moderador'], dados['ana'].id, dados['template'].id)
    assert repetida.status_code == 409
    assert Avaliacao.query.count() == 1


def test_avaliacao_com_template_de_outro_mes(client, auth, dados):
    resposta = _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id, mes=4)
    assert resposta.status_code == 400


def test_moderador_nao_avalia_aluno_de_outra_turma(client, auth, dados):
    resposta = _criar_avaliacao(client, auth['moderador'], dados['carlos'].id, dados['template'].id)
    assert resposta.status_code == 404


def test_submeter_respostas_conclui_com_scores(client, auth, dados):
    avaliacao_id = _avaliacao_concluida(client, auth, dados)
    corpo = client.get(f'{API}/avaliacoes/{avaliacao_id}', headers=auth['admin']).get_json()

    assert corpo['status'] == 'CONCLUIDA'
    assert corpo['data_aplicacao'] == '2025-03-12'
    assert corpo['pontos_fluencia'] == 4.0
    assert corpo['score_fluencia'] == 4.0
    assert corpo['score_cultura'] == 10.0
    assert corpo['score_interpretacao'] == 6.0
    assert corpo['score_atencao'] == 10.0
    assert corpo['score_auto_percepcao'] == 4.0
    assert corpo['score_total'] == 6.8
    assert len(corpo['respostas']) == 5

    log = AuditLog.query.filter_by(action='ASSESSMENT_COMPLETED').one()
    assert log.target_type == 'Avaliacao'
    assert log.target_id == avaliacao_id


def test_concluida_so_aceita_respostas_depois_de_reabrir(client, auth, dados):
    avaliacao_id = _avaliacao_concluida(client, auth, dados)
    respostas = {'respostas': {str(dados['itens'][0].id): '9'}}

    bloqueada = client.put(f'{API}/avaliacoes/{avaliacao_id}/respostas', headers=auth['admin'], json=respostas)
    assert bloqueada.status_code == 409

    assert client.post(f'{API}/avaliacoes/{avaliacao_id}/reabrir', headers=auth['coord']).status_code == 403
    reaberta = client.post(f'{API}/avaliacoes/{avaliacao_id}/reabrir', headers=auth['admin'])
    assert reaberta.get_json()['status'] == 'RASCUNHO'
    assert client.post(f'{API}/avaliacoes/{avaliacao_id}/reabrir', headers=auth['admin']).status_code == 400

    refeita = client.put(f'{API}/avaliacoes/{avaliacao_id}/respostas', headers=auth['admin'], json=respostas)
    corpo = refeita.get_json()
    assert corpo['status'] == 'CONCLUIDA'
    assert corpo['score_fluencia'] == 8.0
    assert corpo['score_cultura'] == 0
    assert corpo['score_total'] == 1.6
    assert len(corpo['respostas']) == 1


def test_respostas_de_item_fora_do_template(client, auth, dados):
    avaliacao_id = _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id).get_json()['id']
    resposta = client.put(f'{API}/avaliacoes/{avaliacao_id}/respostas', headers=auth['admin'],
                          json={'respostas': {'9999': '1'}})
    assert resposta.status_code == 400
    assert resposta.get_json()['details'] == {'itens': ['9999']}


def test_lote_cria_somente_as_que_faltam(client, auth, dados):
    _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id)
    resposta = client.post(f'{API}/avaliacoes/lote', headers=auth['coord'], json={'template_id': dados['template'].id})
    assert resposta.status_code == 200
    assert resposta.get_json() == {
        'avaliacoes_criadas': 2, 'avaliacoes_existentes': 1, 'total_alunos': 3, 'turmas_processadas': 2,
    }

    de_novo = client.post(f'{API}/avaliacoes/lote', headers=auth['coord'], json={
        'template_id': dados['template'].id, 'turma_id': dados['aurora'].id})
    assert de_novo.get_json()['avaliacoes_criadas'] == 0
    assert Avaliacao.query.count() == 3


# --- Relatórios ---

def test_relatorio_do_aluno(client, auth, dados):
    _avaliacao_concluida(client, auth, dados)
    resposta = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}?periodo=all", headers=auth['moderador'])
    assert resposta.status_code == 200
    corpo = resposta.get_json()
    assert [e['mes_ano'] for e in corpo['evolucao']] == ['03/2025']
    assert corpo['evolucao'][0]['score_total'] == 6.8
    assert len(corpo['radar']) == 5
    assert [c['tendencia'] for c in corpo['cards_resumo']] == ['estavel'] * 6
    assert corpo['aluno']['nome'] == 'Ana Maria Silva'


def test_relatorio_sem_avaliacoes(client, auth, dados):
    corpo = client.get(f"{API}/relatorios/aluno/{dados['joao'].id}?periodo=3m", headers=auth['admin']).get_json()
    assert corpo['evolucao'] == []
    assert corpo['radar'] == []
    assert corpo['cards_resumo'] == []


def test_relatorio_com_periodo_invalido(client, auth, dados):
    resposta = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}?periodo=2m", headers=auth['admin'])
    assert resposta.status_code == 400


def test_rascunho_nao_entra_no_relatorio(client, auth, dados):
    avaliacao_id = _avaliacao_concluida(client, auth, dados)
    client.post(f'{API}/avaliacoes/{avaliacao_id}/reabrir', headers=auth['admin'])
    corpo = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}?periodo=all", headers=auth['admin']).get_json()
    assert corpo['evolucao'] == []


def test_relatorio_da_turma(client, auth, dados):
    _avaliacao_concluida(client, auth, dados)
    corpo = client.get(f"{API}/relatorios/turma/{dados['aurora'].id}?periodo=all", headers=auth['coord']).get_json()
    assert corpo['estatisticas'] == {
        'media_geral': 6.8, 'mediana': 6.8, 'total_avaliacoes': 1, 'alunos_sem_avaliacao': 1,
    }
    assert corpo['comparacao'][0]['nome'] == 'Ana Maria Silva'
    assert corpo['comparacao'][0]['posicao'] == 1
    assert corpo['comparacao'][1]['posicao'] is None


def test_exportar_csv(client, auth, dados):
    _avaliacao_concluida(client, auth, dados)
    resposta = client.get(f"{API}/relatorios/turma/{dados['aurora'].id}/exportar", headers=auth['admin'])
    assert resposta.status_code == 200
    assert resposta.headers['Content-Type'].startswith('text/csv')
    assert 'metis_turma_Aurora_' in resposta.headers['Content-Disposition']

    linhas = resposta.get_data(as_text=True).strip().splitlines()
    assert linhas[0].startswith('"ID_aluno","Nome_aluno"')
    assert len(linhas) == 2
    assert '"Ana Maria Silva"' in linhas[1]

    assert client.get(f"{API}/relatorios/turma/{dados['aurora'].id}/exportar",
                      headers=auth['moderador']).status_code == 403


def test_dashboard_do_mes(client, auth, dados):
    _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id)
    corpo = client.get(f'{API}/dashboard?mes=3&ano=2025', headers=auth['admin']).get_json()
    assert [t['nome_turma'] for t in corpo['turmas']] == ['Aurora', 'Véspera']
    aurora = corpo['turmas'][0]
    assert (aurora['concluidas'], aurora['rascunhos'], aurora['pendentes']) == (0, 1, 1)
    assert corpo['estatisticas_gerais']['total_alunos'] == 3

    do_moderador = client.get(f'{API}/dashboard?mes=3&ano=2025', headers=auth['moderador']).get_json()
    assert len(do_moderador['turmas']) == 1


def test_meu_relatorio(client, auth, dados):
    _avaliacao_concluida(client, auth, dados)
    conta = client.post(f"{API}/alunos/{dados['ana'].id}/criar-usuario", headers=auth['admin']).get_json()
    headers = login(client, conta['login'], conta['senha'])

    corpo = client.get(f'{API}/meu-relatorio', headers=headers).get_json()
    assert corpo['evolucao'][0]['score_total'] == 6.8
    assert corpo['tendencia']['direcao'] == 'estavel'
    assert 'Cultura' in corpo['resumo_amigavel']
    assert [r['dominio'] for r in corpo['recomendacoes']] == ['Fluência', 'Auto-percepção', 'Interpretação']

    # Aluno não acessa as rotas da equipe
    assert client.get(f"{API}/relatorios/aluno/{dados['ana'].id}", headers=headers).status_code == 403


def test_ano_fora_da_faixa_responde_400(client, auth, dados):
    anual = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}/anual?ano=0", headers=auth['admin'])
    assert anual.status_code == 400
    assert 'ano' in anual.get_json()['error']
    assert client.get(f'{API}/dashboard?mes=3&ano=0', headers=auth['admin']).status_code == 400

    _avaliacao_concluida(client, auth, dados)
    valido = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}/anual?ano=2025", headers=auth['admin'])
    assert valido.status_code == 200
    assert valido.get_json()['ano'] == 2025
    assert len(valido.get_json()['medias_trimestrais']) == 4


def test_exportar_csv_do_aluno(client, auth, dados):
    _avaliacao_concluida(client, auth, dados)
    resposta = client.get(f"{API}/relatorios/aluno/{dados['ana'].id}/exportar", headers=auth['coord'])
    assert resposta.status_code == 200
    assert resposta.headers['Content-Type'].startswith('text/csv')
    assert 'metis_aluno_Ana_Maria_Silva_' in resposta.headers['Content-Disposition']

    linhas = resposta.get_data(as_text=True).strip().splitlines()
    assert len(linhas) == 2
    assert '"Ana Maria Silva"' in linhas[1]
    assert AuditLog.query.filter_by(action='STUDENT_EXPORTED').count() == 1

    assert client.get(f"{API}/relatorios/aluno/{dados['ana'].id}/exportar",
                      headers=auth['moderador']).status_code == 403
    assert client.get(f'{API}/relatorios/aluno/9999/exportar', headers=auth['admin']).status_code == 404


# --- Templates e recálculo ---

def test_duplicar_template(client, auth, dados):
    template = dados['template']
    resposta = client.post(f'{API}/templates/{template.id}/duplicar', headers=auth['coord'])
    assert resposta.status_code == 201
    copia = resposta.get_json()
    assert copia['id'] != template.id
    assert copia['nome'] == 'Cópia de Padrão 03/2025'
    assert copia['ativo'] is False
    assert (copia['mes_referencia'], copia['ano_referencia']) == (3, 2025)
    assert [i['titulo'] for i in copia['itens']] == [i.titulo for i in dados['itens']]
    assert {i['template_id'] for i in copia['itens']} == {copia['id']}

    assert client.post(f'{API}/templates/9999/duplicar', headers=auth['coord']).status_code == 404
    assert client.post(f'{API}/templates/{template.id}/duplicar', headers=auth['moderador']).status_code == 403


def test_reordenar_itens(client, auth, dados):
    template_id = dados['template'].id
    ids = [item.id for item in dados['itens']][::-1]
    resposta = client.post(f'{API}/templates/{template_id}/itens/reordenar', headers=auth['coord'],
                           json={'item_ids': ids})
    assert resposta.status_code == 200
    itens = resposta.get_json()['itens']
    assert [i['id'] for i in itens] == ids
    assert [i['ordem'] for i in itens] == [1, 2, 3, 4, 5]


def test_reordenar_itens_rejeita_lista_invalida(client, auth, dados):
    url = f"{API}/templates/{dados['template'].id}/itens/reordenar"
    primeiro = dados['itens'][0].id

    desconhecido = client.post(url, headers=auth['coord'], json={'item_ids': [primeiro, 9999]})
    assert desconhecido.status_code == 400
    assert desconhecido.get_json()['details'] == {'itens': [9999]}

    assert client.post(url, headers=auth['coord'], json={'item_ids': [primeiro, primeiro]}).status_code == 400
    assert client.post(url, headers=auth['coord'], json={'item_ids': []}).status_code == 400
    assert client.post(url, headers=auth['coord'], json={}).status_code == 400


def test_recalcular_scores_apos_mudar_o_maximo_do_dominio(client, auth, dados):
    avaliacao_id = _avaliacao_concluida(client, auth, dados)
    fluencia = dados['dominios']['Fluência verbal']
    resposta = client.patch(f'{API}/dominios/{fluencia.id}', headers=auth['coord'], json={'pontuacao_maxima': 8})
    assert resposta.status_code == 200

    assert client.post(f'{API}/avaliacoes/recalcular-scores', headers=auth['coord']).status_code == 403
    resposta = client.post(f'{API}/avaliacoes/recalcular-scores', headers=auth['admin'])
    assert resposta.status_code == 200
    assert resposta.get_json() == {'atualizadas': 1}

    corpo = client.get(f'{API}/avaliacoes/{avaliacao_id}', headers=auth['admin']).get_json()
    assert corpo['pontos_fluencia'] == 4.0
    assert corpo['score_fluencia'] == 5.0
    assert corpo['score_cultura'] == 10.0
    assert corpo['score_total'] == 7.0
    assert AuditLog.query.filter_by(action='SCORES_RECALCULATED').count() == 1


def test_recalcular_scores_ignora_rascunhos(client, auth, dados):
    _criar_avaliacao(client, auth['admin'], dados['ana'].id, dados['template'].id)
    resposta = client.post(f'{API}/avaliacoes/recalcular-scores', headers=auth['admin'])
    assert resposta.get_json() == {'atualizadas': 0}
