from __future__ import annotations

import pytest

from redemulher.core.extensions import db
from redemulher.core.models import AppRole, Equipamento, Solicitacao, User, Viatura
from redemulher.core.users import ensure_admin
from redemulher.core.utils import local_today
from redemulher.rede.analytics import Period
from redemulher.rede.services import dashboard_data, regional_data


def test_seed_demo_data(app):
    assert User.query.count() == 4
    assert User.query.filter(User.role.is_(None)).count() == 1
    assert Equipamento.query.count() == 4
    assert Viatura.query.count() == 3
    assert Solicitacao.query.count() == 4


def test_dashboard_numbers_from_seed(app):
    data = dashboard_data()
    stats = data["stats"]
    assert stats.total_equipamentos == 4
    assert stats.total_viaturas == 6
    assert stats.municipios_com_equipamento == 4
    assert stats.municipios_com_viatura_sem_equipamento == 1
    assert len(data["evolucao"]) == 6
    assert data["evolucao"][-1]["equipamentos"] == 4


def test_regional_data_for_selected_region(app):
    data = regional_data("Grande Fortaleza")
    assert data["selecionada"].equipamentos == 1
    assert data["selecionada"].viaturas_vinculadas == 3
    assert {"municipio": "Fortaleza", "possui_equipamento": True} in data["municipios"]
    assert data["totais"]["equipamentos"] == 4

    assert regional_data("desconhecida")["selecionada"] is None


@pytest.mark.parametrize(
    "path",
    [
        "/dashboard",
        "/rede/equipamentos",
        "/rede/equipamentos/novo",
        "/rede/viaturas",
        "/rede/viaturas/novo",
        "/rede/solicitacoes",
        "/rede/solicitacoes/novo",
        "/rede/regional",
        "/rede/regional?regiao=Cariri",
        "/rede/comparativo",
        "/rede/mapa",
        "/rede/metas",
        "/rede/relatorios",
        "/usuarios",
        "/usuarios/auditoria",
        "/auth/perfil",
    ],
)
def test_admin_pages_render(app, client, login_admin, path):
    login_admin()
    response = client.get(path)
    assert response.status_code == 200


def test_edit_forms_render_and_missing_records_404(app, client, login_admin):
    login_admin()
    equipamento = Equipamento.query.first()
    viatura = Viatura.query.first()
    solicitacao = Solicitacao.query.first()
    assert client.get(f"/rede/equipamentos/{equipamento.id}/editar").status_code == 200
    assert client.get(f"/rede/viaturas/{viatura.id}/editar").status_code == 200
    assert client.get(f"/rede/solicitacoes/{solicitacao.id}/editar").status_code == 200
    assert client.get("/rede/equipamentos/9999/editar").status_code == 404


def test_invalid_period_falls_back_with_message(app, client, login_admin):
    login_admin()
    response = client.get("/rede/comparativo?atual=2026-99", follow_redirects=True)
    assert response.status_code == 200
    assert "Período inválido".encode() in response.data


@pytest.mark.parametrize("path", ["/rede/comparativo", "/rede/comparativo.pdf"])
def test_out_of_range_years_fall_back_to_current_month(app, client, login_admin, path):
    login_admin()
    today = local_today()
    padrao = Period.month(today.year, today.month)

    for atual in ("0001-01", "1900-01", "9999-12"):
        response = client.get(f"{path}?atual={atual}")
        assert response.status_code == 200
        if path.endswith(".pdf"):
            assert f"relatorio-comparativo-{padrao.key}-vs-{padrao.previous().key}.pdf" in response.headers[
                "Content-Disposition"
            ]

    page = client.get("/rede/comparativo?atual=1900-01")
    assert "Sem período anterior a janeiro de 1900".encode() in page.data


def test_ensure_admin_promotes_existing_account(app):
    user = ensure_admin("viewer@redemulher.local", "ignored-pass", "Consulta")
    assert user.role == AppRole.ADMIN
    assert User.query.filter_by(email="viewer@redemulher.local").count() == 1

    created = ensure_admin("nova.admin@redemulher.local", "senha-forte", "Nova Admin")
    assert db.session.get(User, created.id).has_role(AppRole.ADMIN)


def test_cli_create_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-admin", "--email", "cli@redemulher.local", "--password", "senha12345"])
    assert result.exit_code == 0
    assert "Admin ready: cli@redemulher.local" in result.output
    assert User.query.filter_by(email="cli@redemulher.local").one().role == AppRole.ADMIN


def test_cli_seed_is_skipped_when_users_exist(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-demo"])
    assert "Seed skipped" in result.output
