# ===================================================================
# MODELOS DO BANCO DE DADOS
# ===================================================================
import json
from datetime import datetime, date

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import UniqueConstraint
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

PERFIS = ('ADMIN', 'COORDENADOR', 'MODERADOR', 'ALUNO')
STATUS_AVALIACAO = ('RASCUNHO', 'CONCLUIDA')
TURNOS = ('MANHA', 'TARDE', 'NOITE')
STATUS_TURMA = ('ABERTA', 'EM_ANDAMENTO', 'CONCLUIDA')
TIPOS_RESPOSTA = ('NUMERO', 'SIM_NAO', 'OPCAO_UNICA', 'ESCALA', 'TEXTO')


def _iso(valor):
    return valor.isoformat() if isinstance(valor, (datetime, date)) else valor


class Usuario(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(150), nullable=False)
    # Para alunos o e-mail é o login derivado do nome (ex.: 'ana2@metis').
    email = db.Column(db.String(150), unique=True, nullable=False)
    senha_hash = db.Column(db.String(256), nullable=False)
    perfil = db.Column(db.String(20), nullable=False, default='MODERADOR')
    ativo = db.Column(db.Boolean, nullable=False, default=True)
    precisa_trocar_senha = db.Column(db.Boolean, nullable=False, default=False)
    data_criacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def set_senha(self, senha):
        self.senha_hash = generate_password_hash(senha, method='pbkdf2:sha256')

    def check_senha(self, senha):
        return check_password_hash(self.senha_hash, senha)

    def to_dict(self):
        return {
            'id': self.id,
            'nome': self.nome,
            'email': self.email,
            'perfil': self.perfil,
            'ativo': self.ativo,
            'precisa_trocar_senha': self.precisa_trocar_senha,
            'data_criacao': _iso(self.data_criacao),
        }

    def __repr__(self):
        return f'<Usuario {self.email} ({self.perfil})>'


class Turma(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    nome_turma = db.Column(db.String(150), nullable=False)
    dia_semana = db.Column(db.String(20), nullable=True)
    horario = db.Column(db.String(5), nullable=True)  # HH:MM
    turno = db.Column(db.String(10), nullable=True)
    moderador_id = db.Column(db.Integer, db.ForeignKey('usuario.id'), nullable=True)
    capacidade_maxima = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='ABERTA')
    local = db.Column(db.String(150), nullable=True)
    data_criacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    moderador = db.relationship('Usuario', backref='turmas_moderadas')
    alunos = db.relationship('Aluno', backref='turma', lazy=True)

    def to_dict(self, com_alunos=False):
        dados = {
            'id': self.id,
            'nome_turma': self.nome_turma,
            'dia_semana': self.dia_semana,
            'horario': self.horario,
            'turno': self.turno,
            'moderador_id': self.moderador_id,
            'moderador': self.moderador.nome if self.moderador else None,
            'capacidade_maxima': self.capacidade_maxima,
            'status': self.status,
            'local': self.local,
            'total_alunos': len(self.alunos),
        }
        if com_alunos:
            dados['alunos'] = [{'id': a.id, 'nome': a.nome} for a in self.alunos]
        return dados


class Aluno(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(150), nullable=False)
    turma_id = db.Column(db.Integer, db.ForeignKey('turma.id'), nullable=False)
    data_nascimento = db.Column(db.Date, nullable=True)
    observacoes = db.Column(db.Text, nullable=True)
    usuario_id = db.Column(db.Integer, db.ForeignKey('usuario.id'), unique=True, nullable=True)
    data_criacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    usuario = db.relationship('Usuario', backref=db.backref('aluno', uselist=False))
    avaliacoes = db.relationship('Avaliacao', backref='aluno', lazy=True, cascade='all, delete-orphan')
    presencas = db.relationship('Presenca', backref='aluno', lazy=True, cascade='all, delete-orphan')
    eventos = db.relationship('EventoAluno', backref='aluno', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'nome': self.nome,
            'turma_id': self.turma_id,
            'turma': self.turma.nome_turma if self.turma else None,
            'data_nascimento': _iso(self.data_nascimento),
            'observacoes': self.observacoes,
            'usuario_id': self.usuario_id,
            'login': self.usuario.email if self.usuario else None,
        }


class DominioCognitivo(db.Model):
    __tablename__ = 'dominio_cognitivo'
    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(100), unique=True, nullable=False)
    descricao = db.Column(db.Text, nullable=True)
    pontuacao_maxima = db.Column(db.Float, nullable=False, default=10)

    def to_dict(self):
        return {
            'id': self.id,
            'nome': self.nome,
            'descricao': self.descricao,
            'pontuacao_maxima': self.pontuacao_maxima,
        }


class TemplateAvaliacao(db.Model):
    __tablename__ = 'template_avaliacao'
    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(200), nullable=False)
    mes_referencia = db.Column(db.Integer, nullable=False)
    ano_referencia = db.Column(db.Integer, nullable=False)
    ativo = db.Column(db.Boolean, nullable=False, default=True)
    observacoes = db.Column(db.Text, nullable=True)
    data_criacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    itens = db.relationship('TemplateItem', backref='template', lazy=True,
                            cascade='all, delete-orphan', order_by='TemplateItem.ordem')

    def to_dict(self, com_itens=False):
        dados = {
            'id': self.id,
            'nome': self.nome,
            'mes_referencia': self.mes_referencia,
            'ano_referencia': self.ano_referencia,
            'ativo': self.ativo,
            'observacoes': self.observacoes,
            'total_itens': len(self.itens),
        }
        if com_itens:
            dados['itens'] = [item.to_dict() for item in self.itens]
        return dados


class TemplateItem(db.Model):
    __tablename__ = 'template_item'
    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('template_avaliacao.id'), nullable=False)
    dominio_id = db.Column(db.Integer, db.ForeignKey('dominio_cognitivo.id'), nullable=False)
    codigo_item = db.Column(db.String(50), nullable=True)
    titulo = db.Column(db.String(300), nullable=False)
    descricao = db.Column(db.Text, nullable=True)
    tipo_resposta = db.Column(db.String(20), nullable=False, default='NUMERO')
    ordem = db.Column(db.Integer, nullable=False, default=0)
    config_opcoes = db.Column(db.Text, nullable=True)  # JSON
    regra_pontuacao = db.Column(db.Text, nullable=False)  # JSON

    dominio = db.relationship('DominioCognitivo')

    def to_dict(self):
        return {
            'id': self.id,
            'template_id': self.template_id,
            'dominio_id': self.dominio_id,
            'dominio': self.dominio.nome if self.dominio else None,
            'codigo_item': self.codigo_item,
            'titulo': self.titulo,
            'descricao': self.descricao,
            'tipo_resposta': self.tipo_resposta,
            'ordem': self.ordem,
            'config_opcoes': json.loads(self.config_opcoes) if self.config_opcoes else None,
            'regra_pontuacao': json.loads(self.regra_pontuacao) if self.regra_pontuacao else None,
        }


class Avaliacao(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    aluno_id = db.Column(db.Integer, db.ForeignKey('aluno.id'), nullable=False)
    template_id = db.Column(db.Integer, db.ForeignKey('template_avaliacao.id'), nullable=False)
    turma_id = db.Column(db.Integer, db.ForeignKey('turma.id'), nullable=False)
    mes_referencia = db.Column(db.Integer, nullable=False)
    ano_referencia = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='RASCUNHO')
    data_aplicacao = db.Column(db.Date, nullable=True)

    # Soma bruta por domínio, limitada a [0, pontuacao_maxima]
    pontos_fluencia = db.Column(db.Float, nullable=False, default=0)
    pontos_cultura = db.Column(db.Float, nullable=False, default=0)
    pontos_interpretacao = db.Column(db.Float, nullable=False, default=0)
    pontos_atencao = db.Column(db.Float, nullable=False, default=0)
    pontos_auto_percepcao = db.Column(db.Float, nullable=False, default=0)

    # Escala 0-10
    score_fluencia = db.Column(db.Float, nullable=False, default=0)
    score_cultura = db.Column(db.Float, nullable=False, default=0)
    score_interpretacao = db.Column(db.Float, nullable=False, default=0)
    score_atencao = db.Column(db.Float, nullable=False, default=0)
    score_auto_percepcao = db.Column(db.Float, nullable=False, default=0)
    score_total = db.Column(db.Float, nullable=False, default=0)

    data_criacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    data_atualizacao = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    template = db.relationship('TemplateAvaliacao')
    turma = db.relationship('Turma', backref='avaliacoes')
    respostas = db.relationship('RespostaItem', backref='avaliacao', lazy=True, cascade='all, delete-orphan')

    __table_args__ = (UniqueConstraint('aluno_id', 'mes_referencia', 'ano_referencia', name='_aluno_mes_ano_uc'),)

    def zerar_scores(self):
        for dominio in ('fluencia', 'cultura', 'interpretacao', 'atencao', 'auto_percepcao'):
            setattr(self, f'pontos_{dominio}', 0)
            setattr(self, f'score_{dominio}', 0)
        self.score_total = 0

    def to_dict(self, com_respostas=False):
        dados = {
            'id': self.id,
            'aluno_id': self.aluno_id,
            'template_id': self.template_id,
            'turma_id': self.turma_id,
            'mes_referencia': self.mes_referencia,
            'ano_referencia': self.ano_referencia,
            'status': self.status,
            'data_aplicacao': _iso(self.data_aplicacao),
            'score_total': self.score_total,
        }
        for dominio in ('fluencia', 'cultura', 'interpretacao', 'atencao', 'auto_percepcao'):
            dados[f'score_{dominio}'] = getattr(self, f'score_{dominio}')
            dados[f'pontos_{dominio}'] = getattr(self, f'pontos_{dominio}')
        if com_respostas:
            dados['respostas'] = [r.to_dict() for r in self.respostas]
        return dados

    def __repr__(self):
        return f'<Avaliacao aluno={self.aluno_id} {self.mes_referencia:02d}/{self.ano_referencia} {self.status}>'


class RespostaItem(db.Model):
    __tablename__ = 'resposta_item'
    id = db.Column(db.Integer, primary_key=True)
    avaliacao_id = db.Column(db.Integer, db.ForeignKey('avaliacao.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('template_item.id'), nullable=False)
    dominio_id = db.Column(db.Integer, db.ForeignKey('dominio_cognitivo.id'), nullable=False)
    valor_bruto = db.Column(db.String(500), nullable=True)
    valor_numerico = db.Column(db.Float, nullable=True)
    pontuacao_item = db.Column(db.Float, nullable=False, default=0)

    item = db.relationship('TemplateItem')

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'dominio_id': self.dominio_id,
            'valor_bruto': self.valor_bruto,
            'valor_numerico': self.valor_numerico,
            'pontuacao_item': self.pontuacao_item,
        }


class Presenca(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    aluno_id = db.Column(db.Integer, db.ForeignKey('aluno.id'), nullable=False)
    data = db.Column(db.Date, nullable=False)
    presente = db.Column(db.Boolean, nullable=False, default=True)
    observacao = db.Column(db.Text, nullable=True)

    __table_args__ = (UniqueConstraint('aluno_id', 'data', name='_aluno_data_uc'),)

    def to_dict(self):
        return {
            'id': self.id,
            'aluno_id': self.aluno_id,
            'data': _iso(self.data),
            'presente': self.presente,
            'observacao': self.observacao,
        }


class EventoAluno(db.Model):
    __tablename__ = 'evento_aluno'
    id = db.Column(db.Integer, primary_key=True)
    aluno_id = db.Column(db.Integer, db.ForeignKey('aluno.id'), nullable=False)
    data = db.Column(db.Date, nullable=False)
    titulo = db.Column(db.String(200), nullable=False)
    descricao = db.Column(db.Text, nullable=True)
    tipo = db.Column(db.String(50), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'aluno_id': self.aluno_id,
            'data': _iso(self.data),
            'titulo': self.titulo,
            'descricao': self.descricao,
            'tipo': self.tipo,
        }


class AuditLog(db.Model):
    __tablename__ = 'audit_log'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    user_id = db.Column(db.Integer, db.ForeignKey('usuario.id'), nullable=True)
    user_email = db.Column(db.String(150), nullable=False)
    action = db.Column(db.String(100), nullable=False, index=True)  # Ex: 'LOGIN_SUCCESS', 'ASSESSMENT_COMPLETED'
    target_type = db.Column(db.String(50), nullable=True, index=True)  # Ex: 'Usuario', 'Avaliacao'
    target_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship('Usuario', backref='audit_logs')

    def __repr__(self):
        return f'<AuditLog {self.timestamp} - {self.user_email} - {self.action}>'
