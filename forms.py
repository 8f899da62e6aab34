# ===================================================================
# VALIDAÇÃO DE ENTRADA (FORMULÁRIOS APLICADOS A PAYLOADS JSON)
# ===================================================================
import json

from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import (
    StringField, PasswordField, BooleanField, SelectField, IntegerField, FloatField,
    TextAreaField, DateField
)
from wtforms.validators import (
    DataRequired, InputRequired, Email, EqualTo, Length, NumberRange, Optional, Regexp, ValidationError
)

from erros import ErroValidacao
from models import PERFIS, STATUS_TURMA, TIPOS_RESPOSTA, TURNOS


def _opcoes(valores):
    return [(v, v) for v in valores]


class JsonValido:
    """Aceita apenas texto que seja um JSON de objeto ou lista."""

    def __call__(self, form, field):
        try:
            valor = json.loads(field.data)
        except (TypeError, ValueError):
            raise ValidationError('JSON inválido.')
        if not isinstance(valor, (dict, list)):
            raise ValidationError('JSON deve ser um objeto ou uma lista.')


class LoginForm(FlaskForm):
    # Login de aluno não é um e-mail válido ('ana@metis'), por isso sem Email()
    email = StringField('Login', validators=[DataRequired()])
    senha = PasswordField('Senha', validators=[DataRequired()])


class AlterarSenhaForm(FlaskForm):
    senha_atual = PasswordField('Senha Atual', validators=[DataRequired()])
    nova_senha = PasswordField('Nova Senha', validators=[DataRequired(), Length(min=6)])
    confirmar_senha = PasswordField('Confirme a Nova Senha', validators=[
        DataRequired(), EqualTo('nova_senha', message='As senhas devem ser iguais.')])


class UsuarioForm(FlaskForm):
    nome = StringField('Nome', validators=[DataRequired(), Length(min=3, max=150)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    senha = PasswordField('Senha', validators=[Optional(), Length(min=6)])
    perfil = SelectField('Perfil', choices=_opcoes(PERFIS), validators=[DataRequired()])
    ativo = BooleanField('Ativo')


class TurmaForm(FlaskForm):
    nome_turma = StringField('Nome da turma', validators=[DataRequired(), Length(min=3, max=150)])
    dia_semana = StringField('Dia da semana', validators=[Optional(), Length(max=20)])
    horario = StringField('Horário', validators=[Optional(), Regexp(r'^([01]\d|2[0-3]):[0-5]\d$', message='Use o formato HH:MM.')])
    turno = SelectField('Turno', choices=_opcoes(TURNOS), validators=[Optional()])
    moderador_id = IntegerField('Moderador', validators=[Optional()])
    capacidade_maxima = IntegerField('Capacidade', validators=[Optional(), NumberRange(min=1)])
    status = SelectField('Status', choices=_opcoes(STATUS_TURMA), validators=[Optional()])
    local = StringField('Local', validators=[Optional(), Length(max=150)])


class AlunoForm(FlaskForm):
    nome = StringField('Nome', validators=[DataRequired(), Length(min=3, max=150)])
    turma_id = IntegerField('Turma', validators=[InputRequired()])
    data_nascimento = DateField('Data de nascimento', validators=[Optional()])
    observacoes = TextAreaField('Observações', validators=[Optional()])


class DominioForm(FlaskForm):
    nome = StringField('Nome', validators=[DataRequired(), Length(max=100)])
    descricao = TextAreaField('Descrição', validators=[Optional()])
    pontuacao_maxima = FloatField('Pontuação máxima', validators=[Optional(), NumberRange(min=0.1)])


class TemplateForm(FlaskForm):
    nome = StringField('Nome', validators=[DataRequired(), Length(min=3, max=200)])
    mes_referencia = IntegerField('Mês', validators=[InputRequired(), NumberRange(min=1, max=12)])
    ano_referencia = IntegerField('Ano', validators=[InputRequired(), NumberRange(min=2000, max=2100)])
    observacoes = TextAreaField('Observações', validators=[Optional()])
    ativo = BooleanField('Ativo')


class TemplateItemForm(FlaskForm):
    dominio_id = IntegerField('Domínio', validators=[InputRequired()])
    codigo_item = StringField('Código', validators=[Optional(), Length(max=50)])
    titulo = StringField('Título', validators=[DataRequired(), Length(max=300)])
    descricao = TextAreaField('Descrição', validators=[Optional()])
    tipo_resposta = SelectField('Tipo de resposta', choices=_opcoes(TIPOS_RESPOSTA), validators=[DataRequired()])
    ordem = IntegerField('Ordem', validators=[Optional(), NumberRange(min=0)])
    config_opcoes = TextAreaField('Opções', validators=[Optional(), JsonValido()])
    regra_pontuacao = TextAreaField('Regra de pontuação', validators=[DataRequired(), JsonValido()])


class AvaliacaoForm(FlaskForm):
    aluno_id = IntegerField('Aluno', validators=[InputRequired()])
    template_id = IntegerField('Template', validators=[InputRequired()])
    mes_referencia = IntegerField('Mês', validators=[InputRequired(), NumberRange(min=1, max=12)])
    ano_referencia = IntegerField('Ano', validators=[InputRequired(), NumberRange(min=2000, max=2100)])
    data_aplicacao = DateField('Data de aplicação', validators=[Optional()])


class LoteAvaliacaoForm(FlaskForm):
    # Mês e ano vêm do template; sem turma_id o lote cobre todas as turmas visíveis
    template_id = IntegerField('Template', validators=[InputRequired()])
    turma_id = IntegerField('Turma', validators=[Optional()])


class SubmeterRespostasForm(FlaskForm):
    data_aplicacao = DateField('Data de aplicação', validators=[Optional()])


class PresencaForm(FlaskForm):
    data = DateField('Data', validators=[DataRequired()])
    presente = BooleanField('Presente')
    observacao = TextAreaField('Observação', validators=[Optional()])


class EventoForm(FlaskForm):
    data = DateField('Data', validators=[DataRequired()])
    titulo = StringField('Título', validators=[DataRequired(), Length(max=200)])
    descricao = TextAreaField('Descrição', validators=[Optional()])
    tipo = StringField('Tipo', validators=[Optional(), Length(max=50)])


# ===================================================================
# PATCH EXPLÍCITO
# ===================================================================

class Patch:
    """
    Resultado de uma validação: valores convertidos e o conjunto de campos
    que vieram no payload. Só os campos fornecidos são aplicados, mesmo que
    o valor seja 0, '' ou False.
    """

    def __init__(self, campos, fornecidos):
        self.campos = campos
        self.fornecidos = frozenset(fornecidos)

    def __contains__(self, nome):
        return nome in self.fornecidos

    def get(self, nome, padrao=None):
        return self.campos.get(nome, padrao) if nome in self.fornecidos else padrao

    def aplicar(self, obj, ignorar=()):
        for nome in self.fornecidos:
            if nome not in ignorar:
                setattr(obj, nome, self.campos[nome])
        return obj


def _para_formdata(valor):
    if isinstance(valor, bool):
        return 'true' if valor else 'false'
    if isinstance(valor, (dict, list)):
        return json.dumps(valor, ensure_ascii=False)
    return str(valor)


def validar_payload(form_cls, payload, parcial=False):
    """
    Valida um payload JSON com o formulário informado.

    Em modo parcial só os campos presentes são validados; um campo obrigatório
    enviado como null é rejeitado. Lança ErroValidacao com os erros por campo.
    """
    if not isinstance(payload, dict):
        raise ErroValidacao('Corpo da requisição deve ser um objeto JSON')

    formdata = MultiDict({k: _para_formdata(v) for k, v in payload.items() if v is not None})
    form = form_cls(formdata=formdata, meta={'csrf': False})
    nomes = [field.name for field in form]

    fornecidos = [n for n in nomes if n in payload]
    if parcial:
        erros = {}
        for nome in fornecidos:
            field = form[nome]
            if payload[nome] is None:
                if field.flags.required:
                    erros[nome] = ['Campo obrigatório.']
                continue
            if not field.validate(form):
                erros[nome] = field.errors
    else:
        erros = {} if form.validate() else form.errors

    if erros:
        raise ErroValidacao('Dados inválidos', detalhes=erros)

    # Todos os campos ficam em `campos`; `fornecidos` marca os que vieram no payload.
    campos = {n: (None if n in payload and payload[n] is None else form[n].data) for n in nomes}
    return Patch(campos, fornecidos)
