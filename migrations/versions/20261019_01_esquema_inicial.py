"""esquema inicial

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None

DOMINIOS = ("fluencia", "cultura", "interpretacao", "atencao", "auto_percepcao")


def upgrade():
    op.create_table(
        "usuario",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(150), nullable=False),
        sa.Column("email", sa.String(150), nullable=False, unique=True),
        sa.Column("senha_hash", sa.String(256), nullable=False),
        sa.Column("perfil", sa.String(20), nullable=False),
        sa.Column("ativo", sa.Boolean(), nullable=False),
        sa.Column("precisa_trocar_senha", sa.Boolean(), nullable=False),
        sa.Column("data_criacao", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "turma",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome_turma", sa.String(150), nullable=False),
        sa.Column("dia_semana", sa.String(20), nullable=True),
        sa.Column("horario", sa.String(5), nullable=True),
        sa.Column("turno", sa.String(10), nullable=True),
        sa.Column("moderador_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("capacidade_maxima", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("local", sa.String(150), nullable=True),
        sa.Column("data_criacao", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "aluno",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(150), nullable=False),
        sa.Column("turma_id", sa.Integer(), sa.ForeignKey("turma.id"), nullable=False),
        sa.Column("data_nascimento", sa.Date(), nullable=True),
        sa.Column("observacoes", sa.Text(), nullable=True),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True, unique=True),
        sa.Column("data_criacao", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "dominio_cognitivo",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(100), nullable=False, unique=True),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("pontuacao_maxima", sa.Float(), nullable=False),
    )
    op.create_table(
        "template_avaliacao",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(200), nullable=False),
        sa.Column("mes_referencia", sa.Integer(), nullable=False),
        sa.Column("ano_referencia", sa.Integer(), nullable=False),
        sa.Column("ativo", sa.Boolean(), nullable=False),
        sa.Column("observacoes", sa.Text(), nullable=True),
        sa.Column("data_criacao", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "template_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("template_avaliacao.id"), nullable=False),
        sa.Column("dominio_id", sa.Integer(), sa.ForeignKey("dominio_cognitivo.id"), nullable=False),
        sa.Column("codigo_item", sa.String(50), nullable=True),
        sa.Column("titulo", sa.String(300), nullable=False),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("tipo_resposta", sa.String(20), nullable=False),
        sa.Column("ordem", sa.Integer(), nullable=False),
        sa.Column("config_opcoes", sa.Text(), nullable=True),
        sa.Column("regra_pontuacao", sa.Text(), nullable=False),
    )

    colunas_score = []
    for dominio in DOMINIOS:
        colunas_score.append(sa.Column(f"pontos_{dominio}", sa.Float(), nullable=False))
        colunas_score.append(sa.Column(f"score_{dominio}", sa.Float(), nullable=False))
    op.create_table(
        "avaliacao",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aluno_id", sa.Integer(), sa.ForeignKey("aluno.id"), nullable=False),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("template_avaliacao.id"), nullable=False),
        sa.Column("turma_id", sa.Integer(), sa.ForeignKey("turma.id"), nullable=False),
        sa.Column("mes_referencia", sa.Integer(), nullable=False),
        sa.Column("ano_referencia", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("data_aplicacao", sa.Date(), nullable=True),
        *colunas_score,
        sa.Column("score_total", sa.Float(), nullable=False),
        sa.Column("data_criacao", sa.DateTime(), nullable=False),
        sa.Column("data_atualizacao", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("aluno_id", "mes_referencia", "ano_referencia", name="_aluno_mes_ano_uc"),
    )
    op.create_table(
        "resposta_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("avaliacao_id", sa.Integer(), sa.ForeignKey("avaliacao.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("template_item.id"), nullable=False),
        sa.Column("dominio_id", sa.Integer(), sa.ForeignKey("dominio_cognitivo.id"), nullable=False),
        sa.Column("valor_bruto", sa.String(500), nullable=True),
        sa.Column("valor_numerico", sa.Float(), nullable=True),
        sa.Column("pontuacao_item", sa.Float(), nullable=False),
    )
    op.create_table(
        "presenca",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aluno_id", sa.Integer(), sa.ForeignKey("aluno.id"), nullable=False),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("presente", sa.Boolean(), nullable=False),
        sa.Column("observacao", sa.Text(), nullable=True),
        sa.UniqueConstraint("aluno_id", "data", name="_aluno_data_uc"),
    )
    op.create_table(
        "evento_aluno",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aluno_id", sa.Integer(), sa.ForeignKey("aluno.id"), nullable=False),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("titulo", sa.String(200), nullable=False),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("tipo", sa.String(50), nullable=True),
    )
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuario.id"), nullable=True),
        sa.Column("user_email", sa.String(150), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
    )
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_target_type", "audit_log", ["target_type"])


def downgrade():
    op.drop_index("ix_audit_log_target_type", table_name="audit_log")
    op.drop_index("ix_audit_log_action", table_name="audit_log")
    for tabela in ("audit_log", "evento_aluno", "presenca", "resposta_item", "avaliacao", "template_item",
                   "template_avaliacao", "dominio_cognitivo", "aluno", "turma", "usuario"):
        op.drop_table(tabela)
