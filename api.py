# ===================================================================
# API (V1)
# ===================================================================
from datetime import date

from flask import Blueprint, current_app, jsonify, make_response, request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from auth import COOKIE_TOKEN, Principal, gerar_token, role_required, tem_permissao, token_required
from credenciais import derivar_login, gerar_senha, gerar_senha_reset
from erros import ErroConflito, ErroNaoAutenticado, ErroNaoEncontrado, ErroProibido, ErroValidacao
from forms import (
    AlterarSenhaForm, AlunoForm, AvaliacaoForm, DominioForm, EventoForm, LoginForm, LoteAvaliacaoForm,
    PresencaForm, SubmeterRespostasForm, TemplateForm, TemplateItemForm, TurmaForm, UsuarioForm,
    validar_payload
)
from models import (
    db, Aluno, AuditLog, Avaliacao, DominioCognitivo, EventoAluno, Presenca, RespostaItem,
    TemplateAvaliacao, TemplateItem, Turma, Usuario
)
from periodo import calcular_data_inicio, clausula_periodo, validar_periodo
from pontuacao import (
    DOMINIOS, calcular_pontuacao_item, calcular_score_total, calcular_scores_por_dominio, campo_do_dominio
)
import relatorios

# Cria um Blueprint para a API. Todas as rotas aqui começarão com /api/v1
api_v1 = Blueprint('api_v1', __name__, url_prefix='/api/v1')

EQUIPE = ('ADMIN', 'COORDENADOR', 'MODERADOR')
GESTAO = ('ADMIN', 'COORDENADOR')
ANO_MINIMO, ANO_MAXIMO = 2000, 2100


# ===================================================================
# SEÇÃO 1: AUXILIARES
# ===================================================================

def log_audit(principal, action, target_obj=None, details=None, email=None):
    """
    Registra um evento de auditoria.
    Falhas aqui nunca interrompem a requisição.
    """
    try:
        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr or '').split(',')[0].strip()
        log_entry = AuditLog(action=action, details=details, ip_address=ip_address or None)

        if principal is not None:
            log_entry.user_id = principal.user_id
            log_entry.user_email = principal.usuario.email
        else:
            log_entry.user_email = email or 'Sistema'

        if target_obj is not None and getattr(target_obj, 'id', None) is not None:
            log_entry.target_type = target_obj.__class__.__name__
            log_entry.target_id = target_obj.id

        db.session.add(log_entry)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error('ERRO AO SALVAR LOG DE AUDITORIA (%s): %s', action, e)


def _payload():
    dados = request.get_json(silent=True)
    if dados is None:
        return {}
    if not isinstance(dados, dict):
        raise ErroValidacao('Corpo da requisição deve ser um objeto JSON')
    return dados


def _obter(modelo, obj_id, mensagem):
    obj = db.session.get(modelo, obj_id)
    if obj is None:
        raise ErroNaoEncontrado(mensagem)
    return obj


def _commit(mensagem_conflito='Registro duplicado'):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ErroConflito(mensagem_conflito)


def _arg_int(nome, padrao=None, obrigatorio=False):
    valor = request.args.get(nome)
    if valor in (None, ''):
        if obrigatorio:
            raise ErroValidacao(f'Parâmetro {nome} é obrigatório')
        return padrao
    try:
        return int(valor)
    except ValueError:
        raise ErroValidacao(f'Parâmetro {nome} deve ser um número inteiro')


def _arg_ano(padrao=None, obrigatorio=False):
    # Mesma faixa aceita pelos formulários de template e avaliação
    ano = _arg_int('ano', padrao, obrigatorio)
    if ano is not None and not ANO_MINIMO <= ano <= ANO_MAXIMO:
        raise ErroValidacao(f'Parâmetro ano deve estar entre {ANO_MINIMO} e {ANO_MAXIMO}')
    return ano


def _parametros_tendencia():
    cfg = current_app.config
    return cfg['JANELA_TENDENCIA'], cfg['LIMIAR_TENDENCIA']


def _query_turmas(principal):
    """Turmas que o principal pode ver."""
    query = Turma.query
    if not tem_permissao(principal, GESTAO):
        query = query.filter(Turma.moderador_id == principal.user_id)
    return query


def _obter_turma(principal, turma_id):
    turma = _query_turmas(principal).filter(Turma.id == turma_id).first()
    if turma is None:
        raise ErroNaoEncontrado('Turma não encontrada')
    return turma


def _obter_aluno(principal, aluno_id):
    """Carrega o aluno respeitando o escopo do perfil (moderador só vê a própria turma)."""
    aluno = _obter(Aluno, aluno_id, 'Aluno não encontrado')
    if tem_permissao(principal, GESTAO):
        return aluno
    if principal.perfil == 'MODERADOR' and aluno.turma.moderador_id == principal.user_id:
        return aluno
    if principal.perfil == 'ALUNO' and aluno.usuario_id == principal.user_id:
        return aluno
    raise ErroNaoEncontrado('Aluno não encontrado')


def _obter_avaliacao(principal, avaliacao_id):
    avaliacao = _obter(Avaliacao, avaliacao_id, 'Avaliação não encontrada')
    _obter_aluno(principal, avaliacao.aluno_id)
    return avaliacao


def _login_existe(login):
    return db.session.query(Usuario.id).filter(func.lower(Usuario.email) == login.lower()).first() is not None


# ===================================================================
# SEÇÃO 2: AUTENTICAÇÃO
# ===================================================================

@api_v1.route('/login', methods=['POST'])
def api_login():
    """Endpoint de login, retorna um token JWT (também gravado em cookie)."""
    patch = validar_payload(LoginForm, _payload())
    email = patch.campos['email'].strip()

    usuario = Usuario.query.filter(func.lower(Usuario.email) == email.lower()).first()
    if not usuario or not usuario.ativo or not usuario.check_senha(patch.campos['senha']):
        log_audit(None, 'LOGIN_FAILURE', details={'email': email}, email=email)
        current_app.logger.warning('Falha de login para %s', email)
        raise ErroNaoAutenticado('Credenciais inválidas')

    token = gerar_token(usuario)
    log_audit(Principal(usuario.id, usuario.perfil, usuario), 'LOGIN_SUCCESS', target_obj=usuario)

    resposta = make_response(jsonify({'token': token, 'usuario': usuario.to_dict()}))
    resposta.set_cookie(
        COOKIE_TOKEN, token, httponly=True, samesite='Lax',
        max_age=current_app.config['JWT_EXPIRACAO_HORAS'] * 3600,
    )
    return resposta


@api_v1.route('/logout', methods=['POST'])
def api_logout():
    resposta = make_response(jsonify({'message': 'Logout realizado'}))
    resposta.delete_cookie(COOKIE_TOKEN)
    return resposta


@api_v1.route('/perfil', methods=['GET'])
@token_required
def get_perfil(principal):
    """Retorna os dados do usuário autenticado."""
    dados = principal.usuario.to_dict()
    if principal.perfil == 'ALUNO' and principal.usuario.aluno:
        dados['aluno'] = principal.usuario.aluno.to_dict()
    return jsonify(dados)


@api_v1.route('/alterar-senha', methods=['POST'])
@token_required
def alterar_senha(principal):
    patch = validar_payload(AlterarSenhaForm, _payload())
    usuario = principal.usuario
    if not usuario.check_senha(patch.campos['senha_atual']):
        raise ErroValidacao('Senha atual incorreta')

    usuario.set_senha(patch.campos['nova_senha'])
    usuario.precisa_trocar_senha = False
    _commit()
    log_audit(principal, 'PASSWORD_CHANGED', target_obj=usuario)
    return jsonify({'message': 'Senha alterada com sucesso'})


# ===================================================================
# SEÇÃO 3: USUÁRIOS
# ===================================================================

@api_v1.route('/usuarios', methods=['GET'])
@token_required
@role_required('ADMIN')
def listar_usuarios(principal):
    query = Usuario.query
    perfil = request.args.get('perfil')
    if perfil:
        query = query.filter(Usuario.perfil == perfil)
    usuarios = query.order_by(Usuario.nome).all()
    return jsonify({'usuarios': [u.to_dict() for u in usuarios]})


@api_v1.route('/usuarios', methods=['POST'])
@token_required
@role_required('ADMIN')
def criar_usuario(principal):
    patch = validar_payload(UsuarioForm, _payload())
    email = patch.campos['email'].strip().lower()
    if _login_existe(email):
        raise ErroConflito('Email já cadastrado')

    senha = patch.campos['senha'] or gerar_senha_reset()
    usuario = Usuario(
        nome=patch.campos['nome'],
        email=email,
        perfil=patch.campos['perfil'],
        ativo=patch.get('ativo', True),
        precisa_trocar_senha=not patch.campos['senha'],
    )
    usuario.set_senha(senha)
    db.session.add(usuario)
    _commit('Email já cadastrado')
    log_audit(principal, 'USER_CREATED', target_obj=usuario, details={'perfil': usuario.perfil})

    dados = usuario.to_dict()
    if not patch.campos['senha']:
        dados['senha_provisoria'] = senha
    return jsonify(dados), 201


@api_v1.route('/usuarios/<int:usuario_id>', methods=['PATCH'])
@token_required
@role_required('ADMIN')
def atualizar_usuario(principal, usuario_id):
    usuario = _obter(Usuario, usuario_id, 'Usuário não encontrado')
    patch = validar_payload(UsuarioForm, _payload(), parcial=True)

    if 'email' in patch:
        email = patch.campos['email'].strip().lower()
        if email != usuario.email and _login_existe(email):
            raise ErroConflito('Email já cadastrado')
        usuario.email = email
    if 'senha' in patch and patch.campos['senha']:
        usuario.set_senha(patch.campos['senha'])
    patch.aplicar(usuario, ignorar=('email', 'senha'))

    _commit('Email já cadastrado')
    log_audit(principal, 'USER_UPDATED', target_obj=usuario, details={'campos': sorted(patch.fornecidos)})
    return jsonify(usuario.to_dict())


@api_v1.route('/usuarios/<int:usuario_id>/resetar-senha', methods=['POST'])
@token_required
@role_required('ADMIN')
def resetar_senha(principal, usuario_id):
    usuario = _obter(Usuario, usuario_id, 'Usuário não encontrado')
    if usuario.perfil == 'ADMIN' and usuario.id != principal.user_id:
        raise ErroProibido('Não é permitido resetar a senha de outro administrador')

    nova_senha = gerar_senha_reset()
    usuario.set_senha(nova_senha)
    usuario.precisa_trocar_senha = True
    _commit()
    log_audit(principal, 'PASSWORD_RESET', target_obj=usuario)
    return jsonify({'login': usuario.email, 'senha_provisoria': nova_senha})


@api_v1.route('/usuarios/alunos-sem-conta', methods=['GET'])
@token_required
@role_required('ADMIN')
def alunos_sem_conta(principal):
    alunos = Aluno.query.filter(Aluno.usuario_id.is_(None)).order_by(Aluno.nome).all()
    return jsonify({'alunos': [a.to_dict() for a in alunos]})


# ===================================================================
# SEÇÃO 4: TURMAS
# ===================================================================

def _validar_moderador(moderador_id):
    if moderador_id is None:
        return
    moderador = db.session.get(Usuario, moderador_id)
    if moderador is None or moderador.perfil != 'MODERADOR':
        raise ErroValidacao('Moderador inválido', detalhes={'moderador_id': moderador_id})


@api_v1.route('/turmas', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_turmas(principal):
    turmas = _query_turmas(principal).order_by(Turma.nome_turma).all()
    return jsonify({'turmas': [t.to_dict() for t in turmas]})


@api_v1.route('/turmas', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_turma(principal):
    patch = validar_payload(TurmaForm, _payload())
    _validar_moderador(patch.campos['moderador_id'])

    turma = Turma(
        nome_turma=patch.campos['nome_turma'],
        dia_semana=patch.campos['dia_semana'] or None,
        horario=patch.campos['horario'] or None,
        turno=patch.campos['turno'] or None,
        moderador_id=patch.campos['moderador_id'],
        capacidade_maxima=patch.campos['capacidade_maxima'],
        status=patch.campos['status'] or 'ABERTA',
        local=patch.campos['local'] or None,
    )
    db.session.add(turma)
    _commit()
    log_audit(principal, 'CLASS_CREATED', target_obj=turma)
    return jsonify(turma.to_dict()), 201


@api_v1.route('/turmas/<int:turma_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def detalhar_turma(principal, turma_id):
    turma = _obter_turma(principal, turma_id)
    return jsonify(turma.to_dict(com_alunos=True))


@api_v1.route('/turmas/<int:turma_id>', methods=['PATCH'])
@token_required
@role_required(*GESTAO)
def atualizar_turma(principal, turma_id):
    turma = _obter(Turma, turma_id, 'Turma não encontrada')
    patch = validar_payload(TurmaForm, _payload(), parcial=True)
    if 'moderador_id' in patch:
        _validar_moderador(patch.campos['moderador_id'])
    patch.aplicar(turma)
    _commit()
    log_audit(principal, 'CLASS_UPDATED', target_obj=turma, details={'campos': sorted(patch.fornecidos)})
    return jsonify(turma.to_dict())


@api_v1.route('/turmas/<int:turma_id>', methods=['DELETE'])
@token_required
@role_required('ADMIN')
def remover_turma(principal, turma_id):
    turma = _obter(Turma, turma_id, 'Turma não encontrada')
    if turma.alunos:
        raise ErroConflito('Turma possui alunos vinculados')
    log_audit(principal, 'CLASS_DELETED', target_obj=turma, details={'nome_turma': turma.nome_turma})
    db.session.delete(turma)
    _commit()
    return jsonify({'message': 'Turma removida'})


# ===================================================================
# SEÇÃO 5: ALUNOS, PRESENÇAS E EVENTOS
# ===================================================================

@api_v1.route('/alunos', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_alunos(principal):
    query = Aluno.query.join(Turma)
    if not tem_permissao(principal, GESTAO):
        query = query.filter(Turma.moderador_id == principal.user_id)
    turma_id = _arg_int('turma_id')
    if turma_id is not None:
        query = query.filter(Aluno.turma_id == turma_id)
    alunos = query.order_by(Aluno.nome).all()
    return jsonify({'alunos': [a.to_dict() for a in alunos]})


@api_v1.route('/alunos', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_aluno(principal):
    patch = validar_payload(AlunoForm, _payload())
    _obter(Turma, patch.campos['turma_id'], 'Turma não encontrada')

    aluno = Aluno(
        nome=patch.campos['nome'].strip(),
        turma_id=patch.campos['turma_id'],
        data_nascimento=patch.campos['data_nascimento'],
        observacoes=patch.campos['observacoes'] or None,
    )
    db.session.add(aluno)
    _commit()
    log_audit(principal, 'STUDENT_CREATED', target_obj=aluno)
    return jsonify(aluno.to_dict()), 201


@api_v1.route('/alunos/<int:aluno_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def detalhar_aluno(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    return jsonify(aluno.to_dict())


@api_v1.route('/alunos/<int:aluno_id>', methods=['PATCH'])
@token_required
@role_required(*GESTAO)
def atualizar_aluno(principal, aluno_id):
    aluno = _obter(Aluno, aluno_id, 'Aluno não encontrado')
    patch = validar_payload(AlunoForm, _payload(), parcial=True)
    if 'turma_id' in patch:
        _obter(Turma, patch.campos['turma_id'], 'Turma não encontrada')
    patch.aplicar(aluno)
    _commit()
    log_audit(principal, 'STUDENT_UPDATED', target_obj=aluno, details={'campos': sorted(patch.fornecidos)})
    return jsonify(aluno.to_dict())


@api_v1.route('/alunos/<int:aluno_id>', methods=['DELETE'])
@token_required
@role_required('ADMIN')
def remover_aluno(principal, aluno_id):
    aluno = _obter(Aluno, aluno_id, 'Aluno não encontrado')
    log_audit(principal, 'STUDENT_DELETED', target_obj=aluno, details={'nome': aluno.nome})
    db.session.delete(aluno)
    _commit()
    return jsonify({'message': 'Aluno removido'})


@api_v1.route('/alunos/<int:aluno_id>/criar-usuario', methods=['POST'])
@token_required
@role_required('ADMIN')
def criar_usuario_aluno(principal, aluno_id):
    """Cria a conta de acesso do aluno; login e senha são devolvidos uma única vez."""
    aluno = _obter(Aluno, aluno_id, 'Aluno não encontrado')
    if aluno.usuario_id is not None:
        raise ErroConflito('Aluno já possui usuário')

    cfg = current_app.config
    login = derivar_login(aluno.nome, _login_existe, cfg['DOMINIO_LOGIN'], cfg['LIMITE_SUFIXO_LOGIN'])
    senha = gerar_senha(6)

    usuario = Usuario(nome=aluno.nome, email=login, perfil='ALUNO', precisa_trocar_senha=True)
    usuario.set_senha(senha)
    db.session.add(usuario)
    db.session.flush()
    aluno.usuario_id = usuario.id
    _commit('Login já cadastrado')
    log_audit(principal, 'STUDENT_ACCOUNT_CREATED', target_obj=usuario, details={'aluno_id': aluno.id})
    return jsonify({'login': login, 'senha': senha, 'aluno_id': aluno.id}), 201


@api_v1.route('/alunos/<int:aluno_id>/presencas', methods=['GET'])
@token_required
@role_required('ADMIN', 'MODERADOR')
def listar_presencas(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    presencas = Presenca.query.filter_by(aluno_id=aluno.id).order_by(Presenca.data.desc()).all()
    return jsonify({'presencas': [p.to_dict() for p in presencas]})


@api_v1.route('/alunos/<int:aluno_id>/presencas', methods=['POST'])
@token_required
@role_required('ADMIN', 'MODERADOR')
def registrar_presenca(principal, aluno_id):
    """Registra (ou corrige) a presença do aluno em uma data."""
    aluno = _obter_aluno(principal, aluno_id)
    patch = validar_payload(PresencaForm, _payload())
    presente = patch.campos['presente'] if 'presente' in patch else True

    presenca = Presenca.query.filter_by(aluno_id=aluno.id, data=patch.campos['data']).first()
    if presenca is None:
        presenca = Presenca(aluno_id=aluno.id, data=patch.campos['data'])
        db.session.add(presenca)
    presenca.presente = presente
    presenca.observacao = patch.campos['observacao'] or None
    _commit()
    return jsonify(presenca.to_dict()), 201


@api_v1.route('/alunos/<int:aluno_id>/eventos', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_eventos(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    eventos = EventoAluno.query.filter_by(aluno_id=aluno.id).order_by(EventoAluno.data.desc()).all()
    return jsonify({'eventos': [e.to_dict() for e in eventos]})


@api_v1.route('/alunos/<int:aluno_id>/eventos', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_evento(principal, aluno_id):
    aluno = _obter(Aluno, aluno_id, 'Aluno não encontrado')
    patch = validar_payload(EventoForm, _payload())
    evento = EventoAluno(
        aluno_id=aluno.id,
        data=patch.campos['data'],
        titulo=patch.campos['titulo'],
        descricao=patch.campos['descricao'] or None,
        tipo=patch.campos['tipo'] or None,
    )
    db.session.add(evento)
    _commit()
    return jsonify(evento.to_dict()), 201


# ===================================================================
# SEÇÃO 6: DOMÍNIOS, TEMPLATES E ITENS
# ===================================================================

@api_v1.route('/dominios', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_dominios(principal):
    dominios = DominioCognitivo.query.order_by(DominioCognitivo.nome).all()
    return jsonify({'dominios': [d.to_dict() for d in dominios]})


@api_v1.route('/dominios', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_dominio(principal):
    patch = validar_payload(DominioForm, _payload())
    dominio = DominioCognitivo(
        nome=patch.campos['nome'].strip(),
        descricao=patch.campos['descricao'] or None,
        pontuacao_maxima=patch.campos['pontuacao_maxima'] if patch.campos['pontuacao_maxima'] is not None else 10,
    )
    db.session.add(dominio)
    _commit('Domínio já cadastrado')
    return jsonify(dominio.to_dict()), 201


@api_v1.route('/dominios/<int:dominio_id>', methods=['PATCH'])
@token_required
@role_required(*GESTAO)
def atualizar_dominio(principal, dominio_id):
    dominio = _obter(DominioCognitivo, dominio_id, 'Domínio não encontrado')
    patch = validar_payload(DominioForm, _payload(), parcial=True)
    patch.aplicar(dominio)
    _commit('Domínio já cadastrado')
    return jsonify(dominio.to_dict())


@api_v1.route('/dominios/<int:dominio_id>', methods=['DELETE'])
@token_required
@role_required('ADMIN')
def remover_dominio(principal, dominio_id):
    dominio = _obter(DominioCognitivo, dominio_id, 'Domínio não encontrado')
    if TemplateItem.query.filter_by(dominio_id=dominio.id).first():
        raise ErroConflito('Domínio está em uso por itens de template')
    db.session.delete(dominio)
    _commit()
    return jsonify({'message': 'Domínio removido'})


@api_v1.route('/templates', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_templates(principal):
    templates = TemplateAvaliacao.query.order_by(
        TemplateAvaliacao.ano_referencia.desc(), TemplateAvaliacao.mes_referencia.desc()
    ).all()
    return jsonify({'templates': [t.to_dict() for t in templates]})


@api_v1.route('/templates/ativo', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def template_ativo(principal):
    """Template ativo do mês/ano informado, com os itens."""
    mes = _arg_int('mes', obrigatorio=True)
    ano = _arg_ano(obrigatorio=True)
    template = TemplateAvaliacao.query.filter_by(
        mes_referencia=mes, ano_referencia=ano, ativo=True
    ).order_by(TemplateAvaliacao.id.desc()).first()
    if template is None:
        raise ErroNaoEncontrado('Nenhum template ativo para o período')
    return jsonify(template.to_dict(com_itens=True))


@api_v1.route('/templates', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_template(principal):
    patch = validar_payload(TemplateForm, _payload())
    template = TemplateAvaliacao(
        nome=patch.campos['nome'],
        mes_referencia=patch.campos['mes_referencia'],
        ano_referencia=patch.campos['ano_referencia'],
        observacoes=patch.campos['observacoes'] or None,
        ativo=patch.get('ativo', True),
    )
    db.session.add(template)
    _commit()
    log_audit(principal, 'TEMPLATE_CREATED', target_obj=template)
    return jsonify(template.to_dict()), 201


@api_v1.route('/templates/<int:template_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def detalhar_template(principal, template_id):
    template = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    return jsonify(template.to_dict(com_itens=True))


@api_v1.route('/templates/<int:template_id>', methods=['PATCH'])
@token_required
@role_required(*GESTAO)
def atualizar_template(principal, template_id):
    template = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    patch = validar_payload(TemplateForm, _payload(), parcial=True)
    patch.aplicar(template)
    _commit()
    log_audit(principal, 'TEMPLATE_UPDATED', target_obj=template, details={'campos': sorted(patch.fornecidos)})
    return jsonify(template.to_dict())


@api_v1.route('/templates/<int:template_id>', methods=['DELETE'])
@token_required
@role_required('ADMIN')
def remover_template(principal, template_id):
    template = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    if Avaliacao.query.filter_by(template_id=template.id).first():
        raise ErroConflito('Template já possui avaliações; desative-o em vez de remover')
    db.session.delete(template)
    _commit()
    return jsonify({'message': 'Template removido'})


@api_v1.route('/templates/<int:template_id>/duplicar', methods=['POST'])
@token_required
@role_required(*GESTAO)
def duplicar_template(principal, template_id):
    """Copia o template com todos os itens. A cópia nasce inativa."""
    original = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    copia = TemplateAvaliacao(
        nome=f'Cópia de {original.nome}'[:200],
        mes_referencia=original.mes_referencia,
        ano_referencia=original.ano_referencia,
        observacoes=original.observacoes,
        ativo=False,
    )
    for item in original.itens:
        copia.itens.append(TemplateItem(
            dominio_id=item.dominio_id,
            codigo_item=item.codigo_item,
            titulo=item.titulo,
            descricao=item.descricao,
            tipo_resposta=item.tipo_resposta,
            ordem=item.ordem,
            config_opcoes=item.config_opcoes,
            regra_pontuacao=item.regra_pontuacao,
        ))
    db.session.add(copia)
    _commit()
    log_audit(principal, 'TEMPLATE_DUPLICATED', target_obj=copia, details={'origem_id': original.id})
    return jsonify(copia.to_dict(com_itens=True)), 201


def _dados_item(patch, item):
    # config_opcoes e regra_pontuacao chegam como texto JSON já validado
    patch.aplicar(item)
    if 'dominio_id' in patch:
        _obter(DominioCognitivo, patch.campos['dominio_id'], 'Domínio não encontrado')
    return item


@api_v1.route('/templates/<int:template_id>/itens', methods=['POST'])
@token_required
@role_required(*GESTAO)
def criar_item(principal, template_id):
    template = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    patch = validar_payload(TemplateItemForm, _payload())
    item = TemplateItem(template_id=template.id)
    _dados_item(patch, item)
    if item.ordem is None:
        item.ordem = len(template.itens) + 1
    db.session.add(item)
    _commit('Item duplicado')
    return jsonify(item.to_dict()), 201


@api_v1.route('/templates/<int:template_id>/itens/<int:item_id>', methods=['PATCH'])
@token_required
@role_required(*GESTAO)
def atualizar_item(principal, template_id, item_id):
    item = TemplateItem.query.filter_by(id=item_id, template_id=template_id).first()
    if item is None:
        raise ErroNaoEncontrado('Item não encontrado')
    patch = validar_payload(TemplateItemForm, _payload(), parcial=True)
    _dados_item(patch, item)
    _commit()
    return jsonify(item.to_dict())


@api_v1.route('/templates/<int:template_id>/itens/<int:item_id>', methods=['DELETE'])
@token_required
@role_required(*GESTAO)
def remover_item(principal, template_id, item_id):
    item = TemplateItem.query.filter_by(id=item_id, template_id=template_id).first()
    if item is None:
        raise ErroNaoEncontrado('Item não encontrado')
    if RespostaItem.query.filter_by(item_id=item.id).first():
        raise ErroConflito('Item já possui respostas registradas')
    db.session.delete(item)
    _commit()
    return jsonify({'message': 'Item removido'})


@api_v1.route('/templates/<int:template_id>/itens/reordenar', methods=['POST'])
@token_required
@role_required(*GESTAO)
def reordenar_itens(principal, template_id):
    """Recebe {'item_ids': [...]} na ordem desejada; a posição na lista (a partir de 1) vira a ordem."""
    template = _obter(TemplateAvaliacao, template_id, 'Template não encontrado')
    item_ids = _payload().get('item_ids')
    if not isinstance(item_ids, list) or not item_ids:
        raise ErroValidacao('item_ids deve ser uma lista não vazia')

    itens = {item.id: item for item in template.itens}
    invalidos = [i for i in item_ids if not isinstance(i, int) or i not in itens]
    if invalidos or len(set(item_ids)) != len(item_ids):
        raise ErroValidacao('Itens inválidos ou repetidos para o template', detalhes={'itens': invalidos})

    for ordem, item_id in enumerate(item_ids, start=1):
        itens[item_id].ordem = ordem
    _commit()
    return jsonify({'itens': [item.to_dict() for item in sorted(template.itens, key=lambda i: i.ordem)]})


# ===================================================================
# SEÇÃO 7: AVALIAÇÕES
# ===================================================================

def _validar_template_do_periodo(template, mes, ano):
    if not template.ativo:
        raise ErroValidacao('O template selecionado não está mais ativo')
    if template.mes_referencia != mes or template.ano_referencia != ano:
        raise ErroValidacao('Template não corresponde ao mês/ano da avaliação')


def _pontuar(avaliacao, respostas):
    """Grava pontos e scores da avaliação a partir das respostas já pontuadas."""
    dominios = {item.dominio.id: item.dominio for item in avaliacao.template.itens}
    scores = calcular_scores_por_dominio(
        [{'dominio_id': r.dominio_id, 'pontuacao_item': r.pontuacao_item} for r in respostas],
        [{'id': d.id, 'pontuacao_maxima': d.pontuacao_maxima} for d in dominios.values()],
    )

    avaliacao.zerar_scores()
    for dominio_id, score in scores.items():
        campo = campo_do_dominio(dominios[dominio_id].nome)
        if campo in DOMINIOS:
            setattr(avaliacao, f'pontos_{campo}', score['total'])
            setattr(avaliacao, f'score_{campo}', score['score_0a10'])
    avaliacao.score_total = calcular_score_total(scores)


@api_v1.route('/avaliacoes', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def listar_avaliacoes(principal):
    query = Avaliacao.query.join(Turma, Avaliacao.turma_id == Turma.id)
    if not tem_permissao(principal, GESTAO):
        query = query.filter(Turma.moderador_id == principal.user_id)
    for nome, coluna in (('turma_id', Avaliacao.turma_id), ('aluno_id', Avaliacao.aluno_id),
                         ('mes', Avaliacao.mes_referencia), ('ano', Avaliacao.ano_referencia)):
        valor = _arg_int(nome)
        if valor is not None:
            query = query.filter(coluna == valor)
    status = request.args.get('status')
    if status:
        query = query.filter(Avaliacao.status == status)
    avaliacoes = query.order_by(Avaliacao.ano_referencia, Avaliacao.mes_referencia, Avaliacao.id).all()
    return jsonify({'avaliacoes': [a.to_dict() for a in avaliacoes]})


@api_v1.route('/avaliacoes', methods=['POST'])
@token_required
@role_required(*EQUIPE)
def criar_avaliacao(principal):
    """Cria a avaliação em RASCUNHO. Já existindo uma para o aluno no mês, responde 409."""
    patch = validar_payload(AvaliacaoForm, _payload())
    aluno = _obter_aluno(principal, patch.campos['aluno_id'])
    template = _obter(TemplateAvaliacao, patch.campos['template_id'], 'Template não encontrado')
    mes, ano = patch.campos['mes_referencia'], patch.campos['ano_referencia']
    _validar_template_do_periodo(template, mes, ano)

    if Avaliacao.query.filter_by(aluno_id=aluno.id, mes_referencia=mes, ano_referencia=ano).first():
        raise ErroConflito('Já existe avaliação para este aluno no mês/ano informado')

    avaliacao = Avaliacao(
        aluno_id=aluno.id,
        turma_id=aluno.turma_id,
        template_id=template.id,
        mes_referencia=mes,
        ano_referencia=ano,
        status='RASCUNHO',
        data_aplicacao=patch.campos['data_aplicacao'] or date.today(),
    )
    db.session.add(avaliacao)
    _commit('Já existe avaliação para este aluno no mês/ano informado')
    log_audit(principal, 'ASSESSMENT_CREATED', target_obj=avaliacao)
    return jsonify(avaliacao.to_dict()), 201


@api_v1.route('/avaliacoes/lote', methods=['POST'])
@token_required
@role_required(*GESTAO)
def gerar_avaliacoes_em_lote(principal):
    """Cria rascunhos do template para todos os alunos das turmas; ignora quem já tem avaliação."""
    patch = validar_payload(LoteAvaliacaoForm, _payload())
    template = _obter(TemplateAvaliacao, patch.campos['template_id'], 'Template não encontrado')
    if not template.ativo:
        raise ErroValidacao('O template selecionado não está mais ativo')

    if patch.campos['turma_id'] is not None:
        turmas = [_obter_turma(principal, patch.campos['turma_id'])]
    else:
        turmas = _query_turmas(principal).all()
    if not turmas:
        raise ErroNaoEncontrado('Nenhuma turma encontrada')

    existentes = {
        a.aluno_id for a in Avaliacao.query.filter_by(
            mes_referencia=template.mes_referencia, ano_referencia=template.ano_referencia
        ).all()
    }
    criadas = 0
    ja_existentes = 0
    for turma in turmas:
        for aluno in turma.alunos:
            if aluno.id in existentes:
                ja_existentes += 1
                continue
            db.session.add(Avaliacao(
                aluno_id=aluno.id,
                turma_id=turma.id,
                template_id=template.id,
                mes_referencia=template.mes_referencia,
                ano_referencia=template.ano_referencia,
                status='RASCUNHO',
                data_aplicacao=date.today(),
            ))
            criadas += 1
    _commit()
    log_audit(principal, 'ASSESSMENT_BATCH_CREATED', target_obj=template,
              details={'criadas': criadas, 'existentes': ja_existentes})
    return jsonify({
        'avaliacoes_criadas': criadas,
        'avaliacoes_existentes': ja_existentes,
        'total_alunos': sum(len(t.alunos) for t in turmas),
        'turmas_processadas': len(turmas),
    })


@api_v1.route('/avaliacoes/<int:avaliacao_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def detalhar_avaliacao(principal, avaliacao_id):
    avaliacao = _obter_avaliacao(principal, avaliacao_id)
    return jsonify(avaliacao.to_dict(com_respostas=True))


@api_v1.route('/avaliacoes/<int:avaliacao_id>/respostas', methods=['PUT'])
@token_required
@role_required(*EQUIPE)
def submeter_respostas(principal, avaliacao_id):
    """
    Recebe {'respostas': {item_id: valor_bruto}}, pontua cada item e conclui a avaliação.
    Avaliação já concluída precisa ser reaberta antes.
    """
    avaliacao = _obter_avaliacao(principal, avaliacao_id)
    if avaliacao.status == 'CONCLUIDA':
        raise ErroConflito('Avaliação já concluída; reabra-a para editar')

    payload = _payload()
    respostas = payload.get('respostas')
    if not isinstance(respostas, dict) or not respostas:
        raise ErroValidacao('respostas deve ser um objeto {item_id: valor}')
    patch = validar_payload(SubmeterRespostasForm, {k: v for k, v in payload.items() if k != 'respostas'})

    template = avaliacao.template
    _validar_template_do_periodo(template, avaliacao.mes_referencia, avaliacao.ano_referencia)
    itens = {str(item.id): item for item in template.itens}
    desconhecidos = [k for k in respostas if str(k) not in itens]
    if desconhecidos:
        raise ErroValidacao('Itens não pertencem ao template', detalhes={'itens': desconhecidos})

    # Respostas anteriores (de um rascunho ou de uma avaliação reaberta) são descartadas
    avaliacao.respostas.clear()
    registros = []
    for chave, valor in respostas.items():
        if valor is None or valor == '':
            continue
        item = itens[str(chave)]
        valor_bruto = str(valor)
        try:
            valor_numerico = float(valor_bruto.replace(',', '.'))
        except ValueError:
            valor_numerico = None
        registro = RespostaItem(
            item_id=item.id,
            dominio_id=item.dominio_id,
            valor_bruto=valor_bruto,
            valor_numerico=valor_numerico,
            pontuacao_item=calcular_pontuacao_item(valor_bruto, item.regra_pontuacao),
        )
        avaliacao.respostas.append(registro)
        registros.append(registro)

    _pontuar(avaliacao, registros)
    avaliacao.status = 'CONCLUIDA'
    if patch.campos['data_aplicacao']:
        avaliacao.data_aplicacao = patch.campos['data_aplicacao']

    _commit()
    log_audit(principal, 'ASSESSMENT_COMPLETED', target_obj=avaliacao, details={'score_total': avaliacao.score_total})
    return jsonify(avaliacao.to_dict(com_respostas=True))


@api_v1.route('/avaliacoes/<int:avaliacao_id>/reabrir', methods=['POST'])
@token_required
@role_required('ADMIN')
def reabrir_avaliacao(principal, avaliacao_id):
    """Volta uma avaliação CONCLUIDA para RASCUNHO; ela sai dos relatórios até ser concluída de novo."""
    avaliacao = _obter(Avaliacao, avaliacao_id, 'Avaliação não encontrada')
    if avaliacao.status == 'RASCUNHO':
        raise ErroValidacao('Avaliação já está em rascunho')
    avaliacao.status = 'RASCUNHO'
    _commit()
    log_audit(principal, 'ASSESSMENT_REOPENED', target_obj=avaliacao)
    return jsonify(avaliacao.to_dict())


@api_v1.route('/avaliacoes/recalcular-scores', methods=['POST'])
@token_required
@role_required('ADMIN')
def recalcular_scores(principal):
    """
    Repontua as respostas de todas as avaliações CONCLUIDA com as regras dos
    itens e os máximos dos domínios vigentes. Usado depois de editar um domínio
    ou a regra de pontuação de um item.
    """
    avaliacoes = Avaliacao.query.filter_by(status='CONCLUIDA').all()
    for avaliacao in avaliacoes:
        for resposta in avaliacao.respostas:
            resposta.dominio_id = resposta.item.dominio_id
            resposta.pontuacao_item = calcular_pontuacao_item(resposta.valor_bruto, resposta.item.regra_pontuacao)
        _pontuar(avaliacao, avaliacao.respostas)
    _commit()

    current_app.logger.info('Scores recalculados em %d avaliações', len(avaliacoes))
    log_audit(principal, 'SCORES_RECALCULATED', details={'atualizadas': len(avaliacoes)})
    return jsonify({'atualizadas': len(avaliacoes)})


# ===================================================================
# SEÇÃO 8: RELATÓRIOS E DASHBOARD
# ===================================================================

def _avaliacoes_concluidas(data_inicio, **filtros):
    return Avaliacao.query.filter_by(status='CONCLUIDA', **filtros).filter(
        clausula_periodo(data_inicio, Avaliacao.ano_referencia, Avaliacao.mes_referencia)
    ).order_by(Avaliacao.ano_referencia, Avaliacao.mes_referencia).all()


def _relatorio_aluno(aluno, periodo):
    validar_periodo(periodo)
    data_inicio = calcular_data_inicio(periodo)
    janela, limiar = _parametros_tendencia()

    avaliacoes = _avaliacoes_concluidas(data_inicio, aluno_id=aluno.id)
    colegas = [
        a for a in _avaliacoes_concluidas(data_inicio, turma_id=aluno.turma_id) if a.aluno_id != aluno.id
    ]
    presencas = Presenca.query.filter(Presenca.aluno_id == aluno.id)
    eventos = EventoAluno.query.filter(EventoAluno.aluno_id == aluno.id)
    if data_inicio is not None:
        presencas = presencas.filter(Presenca.data >= data_inicio)
        eventos = eventos.filter(EventoAluno.data >= data_inicio)

    relatorio = relatorios.montar_relatorio_aluno(
        [a.to_dict() for a in avaliacoes],
        avaliacoes_turma=[a.to_dict() for a in colegas],
        presencas=[p.to_dict() for p in presencas.all()],
        eventos=[e.to_dict() for e in eventos.order_by(EventoAluno.data).all()],
        periodo=periodo,
        janela=janela,
        limiar=limiar,
    )
    relatorio['aluno'] = aluno.to_dict()
    return relatorio


@api_v1.route('/relatorios/aluno/<int:aluno_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def relatorio_aluno(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    return jsonify(_relatorio_aluno(aluno, request.args.get('periodo', '6m')))


@api_v1.route('/relatorios/aluno/<int:aluno_id>/anual', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def relatorio_anual(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    ano = _arg_ano(padrao=date.today().year)
    janela, limiar = _parametros_tendencia()

    avaliacoes = Avaliacao.query.filter_by(aluno_id=aluno.id, ano_referencia=ano, status='CONCLUIDA').all()
    presencas = Presenca.query.filter(
        Presenca.aluno_id == aluno.id, Presenca.data >= date(ano, 1, 1), Presenca.data <= date(ano, 12, 31)
    ).all()
    anos = [linha[0] for linha in db.session.query(Avaliacao.ano_referencia).filter_by(
        aluno_id=aluno.id, status='CONCLUIDA').distinct().order_by(Avaliacao.ano_referencia.desc()).all()]

    relatorio = relatorios.montar_relatorio_anual(
        [a.to_dict() for a in avaliacoes],
        presencas=[p.to_dict() for p in presencas],
        ano=ano,
        anos_disponiveis=anos,
        janela=janela,
        limiar=limiar,
    )
    relatorio['aluno'] = aluno.to_dict()
    return jsonify(relatorio)


@api_v1.route('/relatorios/turma/<int:turma_id>', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def relatorio_turma(principal, turma_id):
    turma = _obter_turma(principal, turma_id)
    periodo = validar_periodo(request.args.get('periodo', '6m'))
    avaliacoes = _avaliacoes_concluidas(calcular_data_inicio(periodo), turma_id=turma.id)

    relatorio = relatorios.montar_relatorio_turma(
        [{'id': a.id, 'nome': a.nome} for a in turma.alunos],
        [a.to_dict() for a in avaliacoes],
        periodo=periodo,
    )
    relatorio['turma'] = turma.to_dict()
    return jsonify(relatorio)


def _turma_exportacao(turma):
    return {'nome_turma': turma.nome_turma, 'moderador': turma.moderador.nome if turma.moderador else ''}


def _aluno_exportacao(aluno):
    return {
        'id': aluno.id,
        'nome': aluno.nome,
        'data_nascimento': aluno.data_nascimento,
        'avaliacoes': [a.to_dict() for a in aluno.avaliacoes],
        'presencas': [p.to_dict() for p in aluno.presencas],
        'eventos': [e.to_dict() for e in aluno.eventos],
    }


def _resposta_csv(conteudo, nome_arquivo):
    resposta = make_response(conteudo)
    resposta.headers['Content-Type'] = 'text/csv; charset=utf-8'
    resposta.headers['Content-Disposition'] = f'attachment; filename="{nome_arquivo}"'
    return resposta


@api_v1.route('/relatorios/turma/<int:turma_id>/exportar', methods=['GET'])
@token_required
@role_required(*GESTAO)
def exportar_turma(principal, turma_id):
    turma = Turma.query.options(joinedload(Turma.alunos)).filter_by(id=turma_id).first()
    if turma is None:
        raise ErroNaoEncontrado('Turma não encontrada')

    conteudo, nome_arquivo = relatorios.exportar_csv_turma(
        _turma_exportacao(turma), [_aluno_exportacao(aluno) for aluno in turma.alunos]
    )
    log_audit(principal, 'CLASS_EXPORTED', target_obj=turma)
    return _resposta_csv(conteudo, nome_arquivo)


@api_v1.route('/relatorios/aluno/<int:aluno_id>/exportar', methods=['GET'])
@token_required
@role_required(*GESTAO)
def exportar_aluno(principal, aluno_id):
    aluno = _obter_aluno(principal, aluno_id)
    conteudo, nome_arquivo = relatorios.exportar_csv_aluno(_turma_exportacao(aluno.turma), _aluno_exportacao(aluno))
    log_audit(principal, 'STUDENT_EXPORTED', target_obj=aluno)
    return _resposta_csv(conteudo, nome_arquivo)


@api_v1.route('/dashboard', methods=['GET'])
@token_required
@role_required(*EQUIPE)
def dashboard(principal):
    """Andamento das avaliações do mês por turma."""
    hoje = date.today()
    mes = _arg_int('mes', padrao=hoje.month)
    ano = _arg_ano(padrao=hoje.year)
    if not 1 <= mes <= 12:
        raise ErroValidacao('Mês inválido')

    turmas = _query_turmas(principal).order_by(Turma.nome_turma).all()
    ids = [t.id for t in turmas]
    avaliacoes = Avaliacao.query.filter(
        Avaliacao.turma_id.in_(ids), Avaliacao.mes_referencia == mes, Avaliacao.ano_referencia == ano
    ).all() if ids else []

    resultado = relatorios.status_turmas(
        [dict(t.to_dict(com_alunos=True), moderador={'id': t.moderador_id, 'nome': t.moderador.nome} if t.moderador else None)
         for t in turmas],
        [a.to_dict() for a in avaliacoes],
    )
    resultado.update({'mes': mes, 'ano': ano})
    return jsonify(resultado)


@api_v1.route('/meu-relatorio', methods=['GET'])
@token_required
@role_required('ALUNO')
def meu_relatorio(principal):
    """Relatório do próprio aluno, com linguagem amigável e recomendações."""
    aluno = principal.usuario.aluno
    if aluno is None:
        raise ErroNaoEncontrado('Aluno não vinculado a este usuário')
    _, limiar = _parametros_tendencia()

    relatorio = _relatorio_aluno(aluno, request.args.get('periodo', 'all'))
    relatorio['tendencia'] = relatorios.calcular_tendencia_aluno(relatorio['evolucao'], limiar)
    relatorio['resumo_amigavel'] = relatorios.gerar_resumo_amigavel(relatorio['evolucao'], relatorio['radar'])
    relatorio['recomendacoes'] = relatorios.gerar_recomendacoes(relatorio['radar'])
    return jsonify(relatorio)
