# ===================================================================
# AUTENTICAÇÃO (TOKEN JWT) E AUTORIZAÇÃO POR PERFIL
# ===================================================================
from collections import namedtuple
from datetime import datetime, timedelta
from functools import wraps

import jwt
from flask import current_app, request

from erros import ErroNaoAutenticado, ErroProibido
from models import db, Usuario

COOKIE_TOKEN = 'auth-token'

# Quem está chamando. É passado explicitamente para cada rota protegida.
Principal = namedtuple('Principal', ['user_id', 'perfil', 'usuario'])


def gerar_token(usuario):
    horas = current_app.config.get('JWT_EXPIRACAO_HORAS', 24)
    return jwt.encode({
        'id': usuario.id,
        'perfil': usuario.perfil,
        'exp': datetime.utcnow() + timedelta(hours=horas),
    }, current_app.config['SECRET_KEY'], algorithm='HS256')


def ler_token():
    # Cabeçalho tem prioridade sobre o cookie
    return request.headers.get('x-access-token') or request.cookies.get(COOKIE_TOKEN)


def principal_do_token(token):
    """Decodifica o token e carrega o usuário; lança ErroNaoAutenticado se algo falhar."""
    if not token:
        raise ErroNaoAutenticado('Token de acesso não encontrado!')
    try:
        data = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise ErroNaoAutenticado('Token expirado!')
    except jwt.InvalidTokenError as e:
        raise ErroNaoAutenticado('Token inválido!', detalhes=str(e))

    usuario = db.session.get(Usuario, data.get('id'))
    if not usuario or not usuario.ativo:
        raise ErroNaoAutenticado('Usuário do token não encontrado!')
    return Principal(usuario.id, usuario.perfil, usuario)


def tem_permissao(principal, perfis):
    """Única verificação de capacidade: o perfil do principal está entre os exigidos?"""
    return principal is not None and principal.perfil in perfis


def token_required(f):
    """
    Verifica o token JWT enviado no cabeçalho 'x-access-token' (ou no cookie).
    Se for válido, o Principal é passado como primeiro argumento da rota.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        principal = principal_do_token(ler_token())
        return f(principal, *args, **kwargs)
    return decorated


def role_required(*perfis):
    """Decorator aplicado depois de token_required; exige um dos perfis informados."""
    def wrapper(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = args[0] if args and isinstance(args[0], Principal) else None
            if not tem_permissao(principal, perfis):
                raise ErroProibido()
            return f(*args, **kwargs)
        return decorated_function
    return wrapper
