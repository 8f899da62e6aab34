from logging.config import fileConfig

from alembic import context

# O Alembic precisa do app para ler a URL do banco e do db para conhecer as tabelas.
from main import app
from models import db

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Os modelos registrados em models.py definem o metadata alvo.
target_metadata = db.metadata


def run_migrations_offline() -> None:
    """Gera o SQL das migrações sem conectar ao banco."""
    url = app.config.get('SQLALCHEMY_DATABASE_URI')
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Aplica as migrações usando o engine do Flask-SQLAlchemy."""
    with app.app_context():
        connectable = db.engine

        with connectable.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=connection.dialect.name == 'sqlite',
            )

            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
