from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from redemulher.core.models import User
from redemulher.core.users import register_user, update_profile

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.get("/login")
def login():
    if current_user.is_authenticated:
        return redirect(url_for("dashboard_page"))
    return render_template("auth/login.html")


@auth_bp.post("/login")
def login_post():
    email = request.form.get("email", "").strip().lower()
    password = request.form.get("password", "")
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        flash("Email ou senha inválidos", "error")
        return redirect(url_for("auth.login"))
    login_user(user)
    return redirect(url_for("dashboard_page"))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return redirect(url_for("auth.login"))


@auth_bp.get("/cadastro")
def cadastro():
    return render_template("auth/cadastro.html")


@auth_bp.post("/cadastro")
def cadastro_post():
    try:
        register_user(
            request.form.get("email", ""),
            request.form.get("full_name", ""),
            request.form.get("password", ""),
            request.form.get("password_confirm", ""),
        )
    except ValueError as exc:
        flash(str(exc), "error")
        return redirect(url_for("auth.cadastro"))
    flash("Conta criada. Aguarde a aprovação de um administrador.", "success")
    return redirect(url_for("auth.login"))


@auth_bp.get("/perfil")
@login_required
def perfil():
    return render_template("auth/perfil.html")


@auth_bp.post("/perfil")
@login_required
def perfil_post():
    try:
        update_profile(
            current_user,
            request.form.get("full_name", ""),
            request.form.get("password", ""),
            request.form.get("password_confirm", ""),
        )
        flash("Perfil atualizado", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("auth.perfil"))
