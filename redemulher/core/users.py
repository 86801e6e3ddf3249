from __future__ import annotations

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from redemulher.core.extensions import db
from redemulher.core.models import AppRole, AuditAction, AuditLog, User
from redemulher.core.permissions import require_role

logger = logging.getLogger(__name__)

usuarios_bp = Blueprint("usuarios", __name__, url_prefix="/usuarios")

MIN_PASSWORD_LENGTH = 8


def _commit(operacao: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database failure while trying to %s", operacao)
        raise ValueError(f"Erro ao {operacao}: {getattr(exc, 'orig', None) or exc}") from exc


def validate_password(password: str, confirmation: str) -> None:
    if password != confirmation:
        raise ValueError("As senhas não coincidem")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")


def register_user(email: str, full_name: str, password: str, confirmation: str) -> User:
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("O email é obrigatório")
    validate_password(password, confirmation)
    if User.query.filter_by(email=email).first():
        raise ValueError("Já existe uma conta com este email")
    user = User(
        email=email,
        full_name=(full_name or "").strip(),
        password_hash=generate_password_hash(password),
        role=None,
    )
    db.session.add(user)
    _commit("criar conta")
    logger.info("Nova conta aguardando aprovação: %s", email)
    return user


def update_profile(user: User, full_name: str, password: str = "", confirmation: str = "") -> User:
    if password or confirmation:
        validate_password(password, confirmation)
        user.password_hash = generate_password_hash(password)
    user.full_name = (full_name or "").strip()
    _commit("atualizar perfil")
    return user


def ensure_admin(email: str, password: str, full_name: str) -> User:
    email = (email or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, full_name=full_name, password_hash=generate_password_hash(password))
        db.session.add(user)
    user.role = AppRole.ADMIN
    user.is_active = True
    _commit("criar administrador")
    return user


def user_by_id(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("Usuário não encontrado")
    return user


def _parse_role(value: str) -> AppRole:
    try:
        return AppRole((value or "").strip().lower())
    except ValueError as exc:
        raise ValueError(f"Papel inválido: {value}") from exc


def _audit(action: AuditAction, target: User, performer: User, **details) -> None:
    db.session.add(
        AuditLog(
            action=action,
            target_user_id=target.id,
            target_email=target.email,
            performed_by_id=performer.id,
            performed_by_email=performer.email,
            details=details,
        )
    )


def list_users() -> dict[str, list[User]]:
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    return {
        "pendentes": [u for u in users if u.role is None],
        "ativos": [u for u in users if u.role is not None],
    }


def approve_user(user_id: int, role: str, performer: User) -> User:
    user = user_by_id(user_id)
    if user.role is not None:
        raise ValueError("Este usuário já foi aprovado")
    user.role = _parse_role(role)
    _audit(AuditAction.APPROVE_USER, user, performer, role=user.role.value)
    _commit("aprovar usuário")
    logger.info("Usuário %s aprovado como %s por %s", user.email, user.role.value, performer.email)
    return user


def change_role(user_id: int, role: str, performer: User) -> User:
    user = user_by_id(user_id)
    if user.id == performer.id:
        raise ValueError("Você não pode alterar o seu próprio papel")
    new_role = _parse_role(role)
    old_role = user.role.value if user.role else None
    user.role = new_role
    _audit(AuditAction.CHANGE_ROLE, user, performer, old_role=old_role, new_role=new_role.value)
    _commit("alterar papel")
    logger.info("Papel de %s alterado de %s para %s por %s", user.email, old_role, new_role.value, performer.email)
    return user


def remove_access(user_id: int, performer: User) -> User:
    user = user_by_id(user_id)
    if user.id == performer.id:
        raise ValueError("Você não pode remover o seu próprio acesso")
    old_role = user.role.value if user.role else None
    user.role = None
    _audit(AuditAction.REMOVE_ACCESS, user, performer, old_role=old_role)
    _commit("remover acesso")
    logger.info("Acesso de %s removido por %s", user.email, performer.email)
    return user


def list_audit_logs(limit: int = 100) -> list[AuditLog]:
    return AuditLog.query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(max(1, min(limit, 500))).all()


@usuarios_bp.get("")
@login_required
@require_role(AppRole.ADMIN)
def usuarios_page():
    return render_template("usuarios/list.html", roles=list(AppRole), **list_users())


@usuarios_bp.post("/<int:user_id>/aprovar")
@login_required
@require_role(AppRole.ADMIN)
def aprovar(user_id: int):
    try:
        user = approve_user(user_id, request.form.get("role", AppRole.VIEWER.value), current_user)
        flash(f"Usuário {user.email} aprovado", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("usuarios.usuarios_page"))


@usuarios_bp.post("/<int:user_id>/papel")
@login_required
@require_role(AppRole.ADMIN)
def alterar_papel(user_id: int):
    try:
        user = change_role(user_id, request.form.get("role", ""), current_user)
        flash(f"Papel de {user.email} atualizado", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("usuarios.usuarios_page"))


@usuarios_bp.post("/<int:user_id>/remover")
@login_required
@require_role(AppRole.ADMIN)
def remover(user_id: int):
    try:
        user = remove_access(user_id, current_user)
        flash(f"Acesso de {user.email} removido", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("usuarios.usuarios_page"))


@usuarios_bp.get("/auditoria")
@login_required
@require_role(AppRole.ADMIN)
def auditoria():
    return render_template("usuarios/auditoria.html", logs=list_audit_logs())
