from __future__ import annotations

from flask import abort, current_app, flash, jsonify, make_response, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from redemulher.core.models import AppRole, OrgaoResponsavel, StatusSolicitacao, TipoEquipamento
from redemulher.core.municipios import GEOJSON_NAME_MAP, MUNICIPIOS_CEARA, regioes_list
from redemulher.core.permissions import require_approved, require_role
from redemulher.core.utils import local_today, month_key, shift_month
from redemulher.rede import rede_bp
from redemulher.rede.analytics import Period
from redemulher.rede.reports import ExportFile, comparison_pdf, export_records, goals_xlsx
from redemulher.rede.services import (
    comparison_data,
    create_equipamento,
    create_solicitacao,
    create_viatura,
    delete_equipamento,
    delete_solicitacao,
    delete_viatura,
    equipamento_by_id,
    goals_data,
    list_equipamentos,
    list_solicitacoes,
    list_viaturas,
    load_records,
    map_data,
    promote_solicitacao,
    regional_data,
    reset_goals,
    solicitacao_by_id,
    update_equipamento,
    update_solicitacao,
    update_viatura,
    upsert_goals,
    viatura_by_id,
)


def _form_payload(bool_fields: tuple[str, ...] = ()) -> dict[str, str]:
    payload = {k: v for k, v in request.form.items()}
    for name in bool_fields:
        payload.setdefault(name, "")
    return payload


def _download(export: ExportFile, inline: bool = False):
    response = make_response(export.content)
    response.headers["Content-Type"] = export.mimetype
    disposition = "inline" if inline else "attachment"
    response.headers["Content-Disposition"] = f'{disposition}; filename="{export.filename}"'
    return response


def _form_context() -> dict[str, object]:
    return {
        "municipios": MUNICIPIOS_CEARA,
        "tipos": list(TipoEquipamento),
        "orgaos": list(OrgaoResponsavel),
        "status_list": list(StatusSolicitacao),
        "regioes": regioes_list(),
    }


def _period_arg(name: str, fallback: Period) -> Period:
    raw = request.args.get(name, "").strip()
    if not raw:
        return fallback
    try:
        return Period.parse(raw)
    except ValueError as exc:
        flash(str(exc), "error")
        return fallback


# Equipamentos

EQUIPAMENTO_FLAGS = ("possui_patrulha",)


@rede_bp.get("/equipamentos")
@login_required
@require_approved
def equipamentos_page():
    filters = {key: request.args.get(key, "").strip() for key in ("q", "tipo", "patrulha", "regiao")}
    return render_template(
        "rede/equipamentos.html",
        equipamentos=list_equipamentos(filters),
        filters=filters,
        **_form_context(),
    )


@rede_bp.route("/equipamentos/novo", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def equipamento_novo():
    if request.method == "POST":
        try:
            create_equipamento(_form_payload())
            flash("Equipamento cadastrado", "success")
            return redirect(url_for("rede.equipamentos_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template("rede/equipamento_form.html", equipamento=None, form=request.form, **_form_context())


@rede_bp.route("/equipamentos/<int:equipamento_id>/editar", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def equipamento_editar(equipamento_id: int):
    try:
        equipamento = equipamento_by_id(equipamento_id)
    except ValueError:
        abort(404)
    if request.method == "POST":
        try:
            update_equipamento(equipamento_id, _form_payload(EQUIPAMENTO_FLAGS))
            flash("Equipamento atualizado", "success")
            return redirect(url_for("rede.equipamentos_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template(
        "rede/equipamento_form.html", equipamento=equipamento, form=request.form, **_form_context()
    )


@rede_bp.post("/equipamentos/<int:equipamento_id>/excluir")
@login_required
@require_role(AppRole.EDITOR)
def equipamento_excluir(equipamento_id: int):
    try:
        delete_equipamento(equipamento_id)
        flash("Equipamento excluído", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.equipamentos_page"))


# Viaturas

VIATURA_FLAGS = ("vinculada_equipamento",)


@rede_bp.get("/viaturas")
@login_required
@require_approved
def viaturas_page():
    filters = {key: request.args.get(key, "").strip() for key in ("q", "orgao", "vinculada", "regiao")}
    return render_template(
        "rede/viaturas.html",
        viaturas=list_viaturas(filters),
        filters=filters,
        **_form_context(),
    )


@rede_bp.route("/viaturas/novo", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def viatura_nova():
    if request.method == "POST":
        try:
            create_viatura(_form_payload())
            flash("Viatura cadastrada", "success")
            return redirect(url_for("rede.viaturas_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template(
        "rede/viatura_form.html",
        viatura=None,
        form=request.form,
        equipamentos=list_equipamentos(),
        **_form_context(),
    )


@rede_bp.route("/viaturas/<int:viatura_id>/editar", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def viatura_editar(viatura_id: int):
    try:
        viatura = viatura_by_id(viatura_id)
    except ValueError:
        abort(404)
    if request.method == "POST":
        try:
            update_viatura(viatura_id, _form_payload(VIATURA_FLAGS))
            flash("Viatura atualizada", "success")
            return redirect(url_for("rede.viaturas_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template(
        "rede/viatura_form.html",
        viatura=viatura,
        form=request.form,
        equipamentos=list_equipamentos(),
        **_form_context(),
    )


@rede_bp.post("/viaturas/<int:viatura_id>/excluir")
@login_required
@require_role(AppRole.EDITOR)
def viatura_excluir(viatura_id: int):
    try:
        delete_viatura(viatura_id)
        flash("Viatura excluída", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.viaturas_page"))


# Solicitacoes

SOLICITACAO_FLAGS = (
    "recebeu_patrulha",
    "guarda_municipal_estruturada",
    "kit_athena_entregue",
    "capacitacao_realizada",
)


@rede_bp.get("/solicitacoes")
@login_required
@require_approved
def solicitacoes_page():
    filters = {key: request.args.get(key, "").strip() for key in ("q", "status", "tipo", "regiao")}
    return render_template(
        "rede/solicitacoes.html",
        solicitacoes=list_solicitacoes(filters),
        filters=filters,
        **_form_context(),
    )


@rede_bp.route("/solicitacoes/novo", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def solicitacao_nova():
    if request.method == "POST":
        try:
            create_solicitacao(_form_payload())
            flash("Solicitação cadastrada", "success")
            return redirect(url_for("rede.solicitacoes_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template("rede/solicitacao_form.html", solicitacao=None, form=request.form, **_form_context())


@rede_bp.route("/solicitacoes/<int:solicitacao_id>/editar", methods=["GET", "POST"])
@login_required
@require_role(AppRole.EDITOR)
def solicitacao_editar(solicitacao_id: int):
    try:
        solicitacao = solicitacao_by_id(solicitacao_id)
    except ValueError:
        abort(404)
    if request.method == "POST":
        try:
            update_solicitacao(solicitacao_id, _form_payload(SOLICITACAO_FLAGS))
            flash("Solicitação atualizada", "success")
            return redirect(url_for("rede.solicitacoes_page"))
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template(
        "rede/solicitacao_form.html", solicitacao=solicitacao, form=request.form, **_form_context()
    )


@rede_bp.post("/solicitacoes/<int:solicitacao_id>/excluir")
@login_required
@require_role(AppRole.EDITOR)
def solicitacao_excluir(solicitacao_id: int):
    try:
        delete_solicitacao(solicitacao_id)
        flash("Solicitação excluída", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.solicitacoes_page"))


@rede_bp.post("/solicitacoes/<int:solicitacao_id>/transformar")
@login_required
@require_role(AppRole.EDITOR)
def solicitacao_transformar(solicitacao_id: int):
    try:
        equipamento = promote_solicitacao(solicitacao_id)
        flash(f"Equipamento criado em {equipamento.municipio}", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.solicitacoes_page"))


# Painéis


@rede_bp.get("/regional")
@login_required
@require_approved
def regional_page():
    regiao = request.args.get("regiao", "").strip()
    return render_template("rede/regional.html", data=regional_data(regiao), regiao=regiao, regioes=regioes_list())


def _comparison_periods() -> tuple[Period, Period]:
    today = local_today()
    padrao = Period.month(today.year, today.month)
    atual = _period_arg("atual", padrao)
    try:
        anterior_padrao = atual.previous()
    except ValueError as exc:
        flash(f"Sem período anterior a {atual.label}: {exc}", "error")
        atual = padrao
        anterior_padrao = padrao.previous()
    return atual, _period_arg("anterior", anterior_padrao)


@rede_bp.get("/comparativo")
@login_required
@require_approved
def comparativo_page():
    atual, anterior = _comparison_periods()
    return render_template("rede/comparativo.html", data=comparison_data(atual, anterior), atual=atual, anterior=anterior)


@rede_bp.get("/comparativo.pdf")
@login_required
@require_approved
def comparativo_pdf():
    atual, anterior = _comparison_periods()
    return _download(comparison_pdf(comparison_data(atual, anterior)))


@rede_bp.get("/mapa")
@login_required
@require_approved
def mapa_page():
    return render_template("rede/mapa.html", geojson_url=current_app.config["GEOJSON_URL"])


@rede_bp.get("/mapa/dados.json")
@login_required
@require_approved
def mapa_dados():
    data = map_data()
    return jsonify(
        categorias=data["categorias"],
        legenda=data["legenda"],
        rotulos={str(cat): label for cat, label in data["rotulos"].items()},
        aliases=GEOJSON_NAME_MAP,
    )


# Metas


def _goal_month() -> tuple[int, int]:
    today = local_today()
    raw = request.values.get("mes", "").strip()
    if not raw:
        return today.year, today.month
    try:
        period = Period.parse(raw)
    except ValueError as exc:
        flash(str(exc), "error")
        return today.year, today.month
    return period.ano, period.mes


@rede_bp.get("/metas")
@login_required
@require_approved
def metas_page():
    ano, mes = _goal_month()
    return render_template(
        "rede/metas.html",
        data=goals_data(ano, mes),
        ano=ano,
        mes=mes,
        mes_key=month_key(ano, mes),
        mes_anterior=month_key(*shift_month(ano, mes, -1)),
        mes_seguinte=month_key(*shift_month(ano, mes, 1)),
        pode_editar=current_user.has_role(AppRole.ADMIN),
    )


@rede_bp.post("/metas")
@login_required
@require_role(AppRole.ADMIN)
def metas_salvar():
    ano, mes = _goal_month()
    metas = {}
    for regiao in regioes_list():
        metas[regiao] = {
            field: request.form.get(f"{field}__{regiao.name}", "")
            for field in ("meta_equipamentos", "meta_viaturas", "meta_cobertura")
        }
    try:
        upsert_goals(ano, mes, metas, current_user.id)
        flash("Metas salvas", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.metas_page", mes=month_key(ano, mes)))


@rede_bp.post("/metas/restaurar")
@login_required
@require_role(AppRole.ADMIN)
def metas_restaurar():
    ano, mes = _goal_month()
    try:
        reset_goals(ano, mes)
        flash("Metas padrão restauradas", "success")
    except ValueError as exc:
        flash(str(exc), "error")
    return redirect(url_for("rede.metas_page", mes=month_key(ano, mes)))


@rede_bp.get("/metas.xlsx")
@login_required
@require_approved
def metas_xlsx():
    ano, mes = _goal_month()
    return _download(goals_xlsx(ano, mes, goals_data(ano, mes)["progresso"]))


# Exportação


@rede_bp.get("/exportar/<categoria>.<any(pdf, xlsx):formato>")
@login_required
@require_approved
def exportar(categoria: str, formato: str):
    records = load_records()
    try:
        export = export_records(categoria, formato, records.equipamentos, records.viaturas, records.solicitacoes)
    except ValueError:
        abort(404)
    return _download(export)


@rede_bp.get("/relatorios")
@login_required
@require_approved
def relatorios_page():
    return render_template("rede/relatorios.html")
