"""rede mulher initial schema

Revision ID: a3f1c7d2e9b4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a3f1c7d2e9b4"
down_revision = None
branch_labels = None
depends_on = None

TIPO_EQUIPAMENTO = (
    "Casa da Mulher Brasileira",
    "Casa da Mulher Cearense",
    "Casa da Mulher Municipal",
    "Sala Lilás",
)
STATUS_SOLICITACAO = ("Recebida", "Em análise", "Aprovada", "Em implantação", "Inaugurada", "Cancelada")
REGIOES = (
    "Cariri",
    "Centro Sul",
    "Grande Fortaleza",
    "Litoral Leste",
    "Litoral Norte",
    "Litoral Oeste/Vale do Curu",
    "Maciço de Baturité",
    "Serra da Ibiapaba",
    "Sertão Central",
    "Sertão de Canindé",
    "Sertão de Sobral",
    "Sertão dos Crateús",
    "Sertão dos Inhamuns",
    "Vale do Jaguaribe",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("admin", "editor", "viewer", name="app_role"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "equipamento",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("municipio", sa.String(length=120), nullable=False),
        sa.Column("tipo", sa.Enum(*TIPO_EQUIPAMENTO, name="tipo_equipamento"), nullable=False),
        sa.Column("possui_patrulha", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("endereco", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("telefone", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("responsavel", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("observacoes", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("equipamento", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_equipamento_municipio"), ["municipio"], unique=False)
    op.create_index("ix_equipamento_municipio_tipo", "equipamento", ["municipio", "tipo"], unique=False)

    op.create_table(
        "viatura",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("municipio", sa.String(length=120), nullable=False),
        sa.Column("tipo_patrulha", sa.String(length=120), nullable=False, server_default="Patrulha Maria da Penha"),
        sa.Column("vinculada_equipamento", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("equipamento_id", sa.Integer(), nullable=True),
        sa.Column("orgao_responsavel", sa.Enum("PMCE", "Guarda Municipal", name="orgao_responsavel"), nullable=False),
        sa.Column("quantidade", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("data_implantacao", sa.Date(), nullable=True),
        sa.Column("responsavel", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("observacoes", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
        sa.CheckConstraint("quantidade >= 0", name="ck_viatura_quantidade"),
        sa.ForeignKeyConstraint(["equipamento_id"], ["equipamento.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("viatura", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_viatura_municipio"), ["municipio"], unique=False)

    op.create_table(
        "solicitacao",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("municipio", sa.String(length=120), nullable=False),
        sa.Column("data_solicitacao", sa.Date(), nullable=False),
        sa.Column("tipo_equipamento", sa.Enum(*TIPO_EQUIPAMENTO, name="tipo_equipamento"), nullable=False),
        sa.Column("status", sa.Enum(*STATUS_SOLICITACAO, name="status_solicitacao"), nullable=False),
        sa.Column("recebeu_patrulha", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("guarda_municipal_estruturada", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("kit_athena_entregue", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("capacitacao_realizada", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("nup", sa.String(length=20), nullable=True),
        sa.Column("observacoes", sa.Text(), nullable=False, server_default=""),
        sa.Column("anexos", sa.JSON(), nullable=False),
        sa.Column("equipamento_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["equipamento_id"], ["equipamento.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("solicitacao", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_solicitacao_municipio"), ["municipio"], unique=False)

    op.create_table(
        "regional_goal",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("regiao", sa.Enum(*REGIOES, name="regiao_planejamento"), nullable=False),
        sa.Column("ano", sa.Integer(), nullable=False),
        sa.Column("mes", sa.Integer(), nullable=False),
        sa.Column("meta_equipamentos", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("meta_viaturas", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("meta_cobertura", sa.Float(), nullable=False, server_default="50"),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("mes >= 1 AND mes <= 12", name="ck_regional_goal_mes"),
        sa.CheckConstraint(
            "meta_equipamentos >= 0 AND meta_viaturas >= 0 AND meta_cobertura >= 0",
            name="ck_regional_goal_metas",
        ),
        sa.ForeignKeyConstraint(["created_by_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("regiao", "ano", "mes", name="uq_regional_goal_regiao_periodo"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "action",
            sa.Enum("approve_user", "change_role", "remove_access", name="audit_action"),
            nullable=False,
        ),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("target_email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("performed_by_id", sa.Integer(), nullable=True),
        sa.Column("performed_by_email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["performed_by_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["target_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_log_created_at"), ["created_at"], unique=False)


def downgrade():
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_log_created_at"))
    op.drop_table("audit_log")
    op.drop_table("regional_goal")
    with op.batch_alter_table("solicitacao", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_solicitacao_municipio"))
    op.drop_table("solicitacao")
    with op.batch_alter_table("viatura", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_viatura_municipio"))
    op.drop_table("viatura")
    op.drop_index("ix_equipamento_municipio_tipo", table_name="equipamento")
    with op.batch_alter_table("equipamento", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_equipamento_municipio"))
    op.drop_table("equipamento")
    op.drop_table("user_account")
