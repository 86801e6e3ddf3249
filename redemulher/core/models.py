from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from redemulher.core.extensions import db
from redemulher.core.municipios import RegiaoPlanejamento, is_municipio
from redemulher.core.utils import local_today


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _labels(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TipoEquipamento(str, Enum):
    BRASILEIRA = "Casa da Mulher Brasileira"
    CEARENSE = "Casa da Mulher Cearense"
    MUNICIPAL = "Casa da Mulher Municipal"
    SALA_LILAS = "Sala Lilás"


class StatusSolicitacao(str, Enum):
    RECEBIDA = "Recebida"
    EM_ANALISE = "Em análise"
    APROVADA = "Aprovada"
    EM_IMPLANTACAO = "Em implantação"
    INAUGURADA = "Inaugurada"
    CANCELADA = "Cancelada"


STATUS_EM_ANDAMENTO = (
    StatusSolicitacao.RECEBIDA,
    StatusSolicitacao.EM_ANALISE,
    StatusSolicitacao.APROVADA,
    StatusSolicitacao.EM_IMPLANTACAO,
)


class OrgaoResponsavel(str, Enum):
    PMCE = "PMCE"
    GUARDA_MUNICIPAL = "Guarda Municipal"


class AppRole(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LEVELS = {AppRole.ADMIN: 3, AppRole.EDITOR: 2, AppRole.VIEWER: 1}
ROLE_LABELS = {AppRole.ADMIN: "Administrador", AppRole.EDITOR: "Editor", AppRole.VIEWER: "Visualizador"}
PENDING_ROLE_LABEL = "Aguardando Aprovação"


class AuditAction(str, Enum):
    APPROVE_USER = "approve_user"
    CHANGE_ROLE = "change_role"
    REMOVE_ACCESS = "remove_access"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[AppRole | None] = mapped_column(
        SAEnum(AppRole, name="app_role", values_callable=_labels),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @validates("email")
    def validate_email(self, _key, value: str) -> str:
        value = (value or "").strip().lower()
        if "@" not in value:
            raise ValueError("Email inválido")
        return value

    @property
    def is_approved(self) -> bool:
        return self.role is not None

    @property
    def role_label(self) -> str:
        return self.role.label if self.role else PENDING_ROLE_LABEL

    def has_role(self, minimum: AppRole | str) -> bool:
        if self.role is None:
            return False
        return self.role.level >= AppRole(minimum).level


class Equipamento(db.Model):
    __tablename__ = "equipamento"
    __table_args__ = (Index("ix_equipamento_municipio_tipo", "municipio", "tipo"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    municipio: Mapped[str] = mapped_column(db.String(120), nullable=False, index=True)
    tipo: Mapped[TipoEquipamento] = mapped_column(
        SAEnum(TipoEquipamento, name="tipo_equipamento", values_callable=_labels),
        nullable=False,
    )
    possui_patrulha: Mapped[bool] = mapped_column(default=False, nullable=False)
    endereco: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    telefone: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    responsavel: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    observacoes: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    viaturas = relationship("Viatura", back_populates="equipamento", passive_deletes=True)

    @validates("municipio")
    def validate_municipio(self, _key, value: str) -> str:
        value = (value or "").strip()
        if not is_municipio(value):
            raise ValueError(f"Município desconhecido: {value or '(vazio)'}")
        return value


class Viatura(db.Model):
    __tablename__ = "viatura"
    __table_args__ = (CheckConstraint("quantidade >= 0", name="ck_viatura_quantidade"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    municipio: Mapped[str] = mapped_column(db.String(120), nullable=False, index=True)
    tipo_patrulha: Mapped[str] = mapped_column(db.String(120), nullable=False, default="Patrulha Maria da Penha")
    vinculada_equipamento: Mapped[bool] = mapped_column(default=False, nullable=False)
    equipamento_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipamento.id", ondelete="SET NULL"),
        nullable=True,
    )
    orgao_responsavel: Mapped[OrgaoResponsavel] = mapped_column(
        SAEnum(OrgaoResponsavel, name="orgao_responsavel", values_callable=_labels),
        nullable=False,
    )
    quantidade: Mapped[int] = mapped_column(nullable=False, default=1)
    data_implantacao: Mapped[date | None] = mapped_column(nullable=True)
    responsavel: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    observacoes: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    equipamento = relationship("Equipamento", back_populates="viaturas")

    @validates("municipio")
    def validate_municipio(self, _key, value: str) -> str:
        value = (value or "").strip()
        if not is_municipio(value):
            raise ValueError(f"Município desconhecido: {value or '(vazio)'}")
        return value

    @validates("quantidade")
    def validate_quantidade(self, _key, value: int) -> int:
        if value is None or int(value) < 0:
            raise ValueError("A quantidade não pode ser negativa")
        return int(value)


class Solicitacao(db.Model):
    __tablename__ = "solicitacao"

    id: Mapped[int] = mapped_column(primary_key=True)
    municipio: Mapped[str] = mapped_column(db.String(120), nullable=False, index=True)
    data_solicitacao: Mapped[date] = mapped_column(nullable=False, default=local_today)
    tipo_equipamento: Mapped[TipoEquipamento] = mapped_column(
        SAEnum(TipoEquipamento, name="tipo_equipamento", values_callable=_labels),
        nullable=False,
    )
    status: Mapped[StatusSolicitacao] = mapped_column(
        SAEnum(StatusSolicitacao, name="status_solicitacao", values_callable=_labels),
        nullable=False,
        default=StatusSolicitacao.RECEBIDA,
    )
    recebeu_patrulha: Mapped[bool] = mapped_column(default=False, nullable=False)
    guarda_municipal_estruturada: Mapped[bool] = mapped_column(default=False, nullable=False)
    kit_athena_entregue: Mapped[bool] = mapped_column(default=False, nullable=False)
    capacitacao_realizada: Mapped[bool] = mapped_column(default=False, nullable=False)
    nup: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    observacoes: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    anexos: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    equipamento_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipamento.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    equipamento = relationship("Equipamento")

    @validates("municipio")
    def validate_municipio(self, _key, value: str) -> str:
        value = (value or "").strip()
        if not is_municipio(value):
            raise ValueError(f"Município desconhecido: {value or '(vazio)'}")
        return value


class RegionalGoal(db.Model):
    __tablename__ = "regional_goal"
    __table_args__ = (
        UniqueConstraint("regiao", "ano", "mes", name="uq_regional_goal_regiao_periodo"),
        CheckConstraint("mes >= 1 AND mes <= 12", name="ck_regional_goal_mes"),
        CheckConstraint(
            "meta_equipamentos >= 0 AND meta_viaturas >= 0 AND meta_cobertura >= 0",
            name="ck_regional_goal_metas",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    regiao: Mapped[RegiaoPlanejamento] = mapped_column(
        SAEnum(RegiaoPlanejamento, name="regiao_planejamento", values_callable=_labels),
        nullable=False,
    )
    ano: Mapped[int] = mapped_column(nullable=False)
    mes: Mapped[int] = mapped_column(nullable=False)
    meta_equipamentos: Mapped[int] = mapped_column(nullable=False, default=5)
    meta_viaturas: Mapped[int] = mapped_column(nullable=False, default=10)
    meta_cobertura: Mapped[float] = mapped_column(nullable=False, default=50.0)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    created_by = relationship("User")


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(AuditAction, name="audit_action", values_callable=_labels),
        nullable=False,
    )
    target_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    target_email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    performed_by_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    performed_by_email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    details: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)

    target_user = relationship("User", foreign_keys=[target_user_id])
    performed_by = relationship("User", foreign_keys=[performed_by_id])


@event.listens_for(Equipamento, "before_delete")
def equipamento_before_delete(_mapper, connection, target: Equipamento) -> None:
    connection.execute(
        Viatura.__table__.update()
        .where(Viatura.equipamento_id == target.id)
        .values(vinculada_equipamento=False, equipamento_id=None)
    )
    connection.execute(
        Solicitacao.__table__.update()
        .where(Solicitacao.equipamento_id == target.id)
        .values(equipamento_id=None)
    )


DEMO_PASSWORD = "demo12345"


def seed_demo_data(session) -> None:
    now = utcnow()
    last_month = now - timedelta(days=35)

    admin = User(
        email="admin@redemulher.local",
        full_name="Admin Rede Mulher",
        password_hash=generate_password_hash("admin123"),
        role=AppRole.ADMIN,
    )
    editor = User(
        email="editor@redemulher.local",
        full_name="Editora Rede Mulher",
        password_hash=generate_password_hash(DEMO_PASSWORD),
        role=AppRole.EDITOR,
    )
    viewer = User(
        email="viewer@redemulher.local",
        full_name="Consulta Rede Mulher",
        password_hash=generate_password_hash(DEMO_PASSWORD),
        role=AppRole.VIEWER,
    )
    pending = User(
        email="pendente@redemulher.local",
        full_name="Cadastro Pendente",
        password_hash=generate_password_hash(DEMO_PASSWORD),
        role=None,
    )
    session.add_all([admin, editor, viewer, pending])
    session.flush()

    fortaleza = Equipamento(
        municipio="Fortaleza",
        tipo=TipoEquipamento.BRASILEIRA,
        possui_patrulha=True,
        endereco="Rua Teles de Souza, s/n - Couto Fernandes",
        telefone="(85) 3108-2998",
        responsavel="Coordenação CMB",
        created_at=last_month,
    )
    juazeiro = Equipamento(
        municipio="Juazeiro do Norte",
        tipo=TipoEquipamento.CEARENSE,
        possui_patrulha=False,
        created_at=last_month,
    )
    sobral = Equipamento(
        municipio="Sobral",
        tipo=TipoEquipamento.CEARENSE,
        possui_patrulha=True,
        created_at=now,
    )
    iguatu = Equipamento(
        municipio="Iguatu",
        tipo=TipoEquipamento.SALA_LILAS,
        created_at=now,
    )
    session.add_all([fortaleza, juazeiro, sobral, iguatu])
    session.flush()

    session.add_all(
        [
            Viatura(
                municipio="Fortaleza",
                orgao_responsavel=OrgaoResponsavel.PMCE,
                vinculada_equipamento=True,
                equipamento_id=fortaleza.id,
                quantidade=3,
                data_implantacao=last_month.date(),
                created_at=last_month,
            ),
            Viatura(
                municipio="Crato",
                orgao_responsavel=OrgaoResponsavel.GUARDA_MUNICIPAL,
                quantidade=2,
                created_at=now,
            ),
            Viatura(
                municipio="Sobral",
                orgao_responsavel=OrgaoResponsavel.PMCE,
                vinculada_equipamento=True,
                equipamento_id=sobral.id,
                quantidade=1,
                created_at=now,
            ),
        ]
    )

    session.add_all(
        [
            Solicitacao(
                municipio="Quixadá",
                tipo_equipamento=TipoEquipamento.MUNICIPAL,
                status=StatusSolicitacao.INAUGURADA,
                recebeu_patrulha=True,
                kit_athena_entregue=True,
                nup="62000.001234/2024-11",
                observacoes="Inauguração prevista no plano regional",
                created_at=now,
            ),
            Solicitacao(
                municipio="Crateús",
                tipo_equipamento=TipoEquipamento.SALA_LILAS,
                status=StatusSolicitacao.EM_ANALISE,
                created_at=now,
            ),
            Solicitacao(
                municipio="Aracati",
                tipo_equipamento=TipoEquipamento.CEARENSE,
                status=StatusSolicitacao.APROVADA,
                guarda_municipal_estruturada=True,
                created_at=last_month,
            ),
            Solicitacao(
                municipio="Tauá",
                tipo_equipamento=TipoEquipamento.SALA_LILAS,
                status=StatusSolicitacao.CANCELADA,
                created_at=last_month,
            ),
        ]
    )
    session.commit()
