# ===================================================================
# SEÇÃO 1: IMPORTS
# ===================================================================
import os
import logging
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
load_dotenv()
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from erros import ErroApi
from models import db
from api import api_v1

# ===================================================================
# SEÇÃO 2: CONFIGURAÇÃO DO APLICATIVO E EXTENSÕES
# ===================================================================
app = Flask(__name__)

secret_key = os.getenv('SECRET_KEY')
if not secret_key:
    raise ValueError("A variável de ambiente SECRET_KEY não foi encontrada. Verifique seu arquivo .env.")
app.config['SECRET_KEY'] = secret_key

# --- FORMA ROBUSTA DE CARREGAR A URL DO BANCO ---
database_uri = os.getenv('DATABASE_URL')
if not database_uri:
    raise ValueError("A variável de ambiente DATABASE_URL não foi encontrada. Verifique seu arquivo .env.")

if database_uri.startswith("postgres://"):
    database_uri = database_uri.replace("postgres://", "postgresql://", 1)

app.config['SQLALCHEMY_DATABASE_URI'] = database_uri
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['JSON_SORT_KEYS'] = False

# Token e regras de análise
app.config['JWT_EXPIRACAO_HORAS'] = int(os.getenv('JWT_EXPIRACAO_HORAS', '24'))
app.config['LIMIAR_TENDENCIA'] = float(os.getenv('LIMIAR_TENDENCIA', '0.5'))
app.config['JANELA_TENDENCIA'] = int(os.getenv('JANELA_TENDENCIA', '6'))
app.config['DOMINIO_LOGIN'] = os.getenv('DOMINIO_LOGIN', '@metis')
app.config['LIMITE_SUFIXO_LOGIN'] = int(os.getenv('LIMITE_SUFIXO_LOGIN', '1000'))

db.init_app(app)
migrate = Migrate(app, db)

# ===================================================================
# SEÇÃO 3: LOGGING
# ===================================================================
formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
app.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

log_file = os.getenv('LOG_FILE')
if log_file:
    file_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
    file_handler.setFormatter(formatter)
    app.logger.addHandler(file_handler)

# Mensagens do módulo de pontuação seguem o mesmo destino do app
for handler in app.logger.handlers:
    logging.getLogger('pontuacao').addHandler(handler)

# ===================================================================
# SEÇÃO 4: TRATAMENTO DE ERROS
# ===================================================================

@app.errorhandler(ErroApi)
def tratar_erro_api(e):
    db.session.rollback()
    if e.status >= 500:
        app.logger.error('%s: %s', e.__class__.__name__, e.mensagem)
    return jsonify(e.to_dict()), e.status


@app.errorhandler(IntegrityError)
def tratar_integridade(e):
    db.session.rollback()
    app.logger.warning('Violação de integridade: %s', e.orig)
    return jsonify({'error': 'Registro duplicado'}), 409


@app.errorhandler(HTTPException)
def tratar_http(e):
    return jsonify({'error': e.description}), e.code


@app.errorhandler(Exception)
def tratar_inesperado(e):
    db.session.rollback()
    app.logger.exception('Erro inesperado: %s', e)
    return jsonify({'error': 'Erro interno do servidor'}), 500

# ===================================================================
# SEÇÃO 5: REGISTRO DOS BLUEPRINTS E EXECUÇÃO
# ===================================================================
app.register_blueprint(api_v1)

# Bloco de execução padrão para rodar a aplicação Flask
if __name__ == '__main__':
    with app.app_context():
        # Em produção o esquema é criado pelas migrações (flask db upgrade).
        db.create_all()
    app.run(debug=os.getenv('FLASK_DEBUG') == '1')
