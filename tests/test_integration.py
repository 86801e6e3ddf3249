from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook

from redemulher.core.extensions import db
from redemulher.core.models import (
    Equipamento,
    RegionalGoal,
    Solicitacao,
    StatusSolicitacao,
    TipoEquipamento,
    Viatura,
)
from redemulher.core.municipios import RegiaoPlanejamento, regioes_list
from redemulher.rede.analytics import regional_overview
from redemulher.rede.services import create_viatura, delete_equipamento, load_records, promote_solicitacao


def test_equipamento_crud_flow(app, client, login_editor):
    login_editor()

    create_response = client.post(
        "/rede/equipamentos/novo",
        data={
            "municipio": "Crato",
            "tipo": TipoEquipamento.MUNICIPAL.value,
            "possui_patrulha": "1",
            "endereco": "Rua Santos Dumont, 100",
            "telefone": "(88) 3521-0000",
        },
        follow_redirects=True,
    )
    assert create_response.status_code == 200
    assert b"Equipamento cadastrado" in create_response.data

    equipamento = Equipamento.query.filter_by(municipio="Crato").one()
    assert equipamento.possui_patrulha
    equipamento_id = equipamento.id

    search_response = client.get("/rede/equipamentos?q=Santos")
    assert b"Crato" in search_response.data
    assert b"Iguatu" not in search_response.data
    assert client.get("/rede/equipamentos?regiao=Cariri").status_code == 200

    edit_response = client.post(
        f"/rede/equipamentos/{equipamento_id}/editar",
        data={"municipio": "Crato", "tipo": TipoEquipamento.SALA_LILAS.value, "telefone": "(88) 3521-1111"},
        follow_redirects=True,
    )
    assert edit_response.status_code == 200
    equipamento = db.session.get(Equipamento, equipamento_id)
    assert equipamento.tipo == TipoEquipamento.SALA_LILAS
    assert equipamento.telefone == "(88) 3521-1111"
    assert not equipamento.possui_patrulha

    delete_response = client.post(f"/rede/equipamentos/{equipamento_id}/excluir", follow_redirects=True)
    assert delete_response.status_code == 200
    assert db.session.get(Equipamento, equipamento_id) is None


def test_equipamento_rejects_unknown_municipio(app, client, login_editor):
    login_editor()
    before = Equipamento.query.count()
    response = client.post(
        "/rede/equipamentos/novo",
        data={"municipio": "Recife", "tipo": TipoEquipamento.CEARENSE.value},
    )
    assert response.status_code == 200
    assert "Município desconhecido: Recife".encode() in response.data
    assert Equipamento.query.count() == before


def test_invalid_edit_leaves_record_untouched(app, client, login_editor):
    login_editor()
    equipamento = Equipamento.query.filter_by(municipio="Iguatu").one()
    response = client.post(
        f"/rede/equipamentos/{equipamento.id}/editar",
        data={"municipio": "Iguatu", "tipo": "Casa inexistente", "responsavel": "Nova coordenação"},
    )
    assert response.status_code == 200
    db.session.expire_all()
    equipamento = db.session.get(Equipamento, equipamento.id)
    assert equipamento.tipo == TipoEquipamento.SALA_LILAS
    assert equipamento.responsavel == ""


def test_deleting_equipamento_unlinks_viaturas(app, client, login_editor):
    login_editor()
    fortaleza = Equipamento.query.filter_by(municipio="Fortaleza").one()
    viatura = Viatura.query.filter_by(municipio="Fortaleza").one()
    assert viatura.equipamento_id == fortaleza.id

    client.post(f"/rede/equipamentos/{fortaleza.id}/excluir", follow_redirects=True)

    viatura = db.session.get(Viatura, viatura.id)
    assert viatura is not None
    assert viatura.equipamento_id is None
    assert not viatura.vinculada_equipamento


def test_delete_equipamento_service_unlinks_loaded_viaturas(app):
    iguatu = Equipamento.query.filter_by(municipio="Iguatu").one()
    viatura = create_viatura(
        {
            "municipio": "Iguatu",
            "orgao_responsavel": "PMCE",
            "quantidade": "2",
            "vinculada_equipamento": "1",
            "equipamento_id": str(iguatu.id),
        }
    )
    assert iguatu.viaturas == [viatura]

    delete_equipamento(iguatu.id)

    db.session.expire_all()
    viatura = db.session.get(Viatura, viatura.id)
    assert viatura.equipamento_id is None
    assert viatura.vinculada_equipamento is False

    records = load_records()
    overview = {row.regiao: row for row in regional_overview(records.equipamentos, records.viaturas, [])}
    centro_sul = overview[RegiaoPlanejamento.CENTRO_SUL]
    assert centro_sul.viaturas_vinculadas == 0
    assert centro_sul.viaturas_nao_vinculadas == 2


def test_delete_promoted_equipamento_clears_solicitacao_link(app):
    solicitacao = Solicitacao.query.filter_by(municipio="Quixadá").one()
    equipamento = promote_solicitacao(solicitacao.id)

    delete_equipamento(equipamento.id)

    db.session.expire_all()
    assert db.session.get(Solicitacao, solicitacao.id).equipamento_id is None


def test_viatura_create_and_quantity_rules(app, client, login_editor):
    login_editor()
    sobral = Equipamento.query.filter_by(municipio="Sobral").one()

    response = client.post(
        "/rede/viaturas/novo",
        data={
            "municipio": "Sobral",
            "orgao_responsavel": "PMCE",
            "quantidade": "2",
            "vinculada_equipamento": "1",
            "equipamento_id": str(sobral.id),
            "data_implantacao": "2026-03-08",
        },
        follow_redirects=True,
    )
    assert b"Viatura cadastrada" in response.data
    created = Viatura.query.filter_by(municipio="Sobral", quantidade=2).one()
    assert created.equipamento_id == sobral.id
    assert created.tipo_patrulha == "Patrulha Maria da Penha"

    before = Viatura.query.count()
    zero_response = client.post(
        "/rede/viaturas/novo",
        data={"municipio": "Sobral", "orgao_responsavel": "PMCE", "quantidade": "0"},
    )
    assert "A quantidade deve ser no mínimo 1".encode() in zero_response.data
    assert Viatura.query.count() == before

    filtered = client.get("/rede/viaturas?orgao=Guarda%20Municipal")
    assert b"Crato" in filtered.data


def test_solicitacao_nup_validation(app, client, login_editor):
    login_editor()
    bad = client.post(
        "/rede/solicitacoes/novo",
        data={"municipio": "Tianguá", "tipo_equipamento": TipoEquipamento.SALA_LILAS.value, "nup": "123"},
    )
    assert "NUP inválido".encode() in bad.data
    assert Solicitacao.query.filter_by(municipio="Tianguá").count() == 0

    good = client.post(
        "/rede/solicitacoes/novo",
        data={
            "municipio": "Tianguá",
            "tipo_equipamento": TipoEquipamento.SALA_LILAS.value,
            "nup": "62000002222202511",
            "capacitacao_realizada": "on",
        },
        follow_redirects=True,
    )
    assert "Solicitação cadastrada".encode() in good.data
    solicitacao = Solicitacao.query.filter_by(municipio="Tianguá").one()
    assert solicitacao.nup == "62000.002222/2025-11"
    assert solicitacao.status == StatusSolicitacao.RECEBIDA
    assert solicitacao.capacitacao_realizada


def test_promote_inaugurated_solicitacao(app, client, login_editor):
    login_editor()
    solicitacao = Solicitacao.query.filter_by(municipio="Quixadá").one()
    before = Equipamento.query.count()

    response = client.post(f"/rede/solicitacoes/{solicitacao.id}/transformar", follow_redirects=True)
    assert "Equipamento criado em Quixadá".encode() in response.data
    assert Equipamento.query.count() == before + 1

    equipamento = Equipamento.query.filter_by(municipio="Quixadá").one()
    assert equipamento.tipo == TipoEquipamento.MUNICIPAL
    assert equipamento.possui_patrulha
    assert equipamento.observacoes.startswith(f"Criado a partir da solicitação {solicitacao.id}.")
    assert db.session.get(Solicitacao, solicitacao.id).equipamento_id == equipamento.id

    again = client.post(f"/rede/solicitacoes/{solicitacao.id}/transformar", follow_redirects=True)
    assert "já foi transformada".encode() in again.data
    assert Equipamento.query.count() == before + 1


def test_promote_requires_inaugurada_status(app, client, login_editor):
    login_editor()
    solicitacao = Solicitacao.query.filter_by(municipio="Crateús").one()
    before = Equipamento.query.count()

    response = client.post(f"/rede/solicitacoes/{solicitacao.id}/transformar", follow_redirects=True)
    assert "Apenas solicitações com status Inaugurada".encode() in response.data
    assert Equipamento.query.count() == before


def _goal_form(mes: str, equipamentos: str = "7") -> dict[str, str]:
    data = {"mes": mes}
    for regiao in regioes_list():
        data[f"meta_equipamentos__{regiao.name}"] = equipamentos
        data[f"meta_viaturas__{regiao.name}"] = "12"
        data[f"meta_cobertura__{regiao.name}"] = "60"
    return data


def test_goals_upsert_and_reset(app, client, login_admin):
    login_admin()
    response = client.post("/rede/metas", data=_goal_form("2026-03"), follow_redirects=True)
    assert b"Metas salvas" in response.data
    assert RegionalGoal.query.filter_by(ano=2026, mes=3).count() == 14

    client.post("/rede/metas", data=_goal_form("2026-03", equipamentos="9"), follow_redirects=True)
    goals = RegionalGoal.query.filter_by(ano=2026, mes=3).all()
    assert len(goals) == 14
    assert {goal.meta_equipamentos for goal in goals} == {9}

    page = client.get("/rede/metas?mes=2026-03")
    assert page.status_code == 200
    assert "março de 2026".encode() in page.data

    reset = client.post("/rede/metas/restaurar", data={"mes": "2026-03"}, follow_redirects=True)
    assert "Metas padrão restauradas".encode() in reset.data
    assert RegionalGoal.query.filter_by(ano=2026, mes=3).count() == 0


def test_goal_coverage_above_100_is_rejected(app, client, login_admin):
    login_admin()
    data = _goal_form("2026-05")
    data["meta_cobertura__CARIRI"] = "120"
    response = client.post("/rede/metas", data=data, follow_redirects=True)
    assert "não pode passar de 100".encode() in response.data
    assert RegionalGoal.query.count() == 0


def test_fractional_goal_counts_are_rejected(app, client, login_admin):
    login_admin()
    data = _goal_form("2026-05")
    data["meta_equipamentos__CARIRI"] = "2.7"
    response = client.post("/rede/metas", data=data, follow_redirects=True)
    assert "A meta de equipamentos deve ser um número inteiro".encode() in response.data
    assert RegionalGoal.query.count() == 0

    data = _goal_form("2026-05")
    data["meta_viaturas__SERTAO_CENTRAL"] = "nan"
    response = client.post("/rede/metas", data=data, follow_redirects=True)
    assert "Valor inválido para a meta de viaturas".encode() in response.data
    assert RegionalGoal.query.count() == 0

    client.post("/rede/metas", data=_goal_form("2026-05", equipamentos="3,0"), follow_redirects=True)
    assert {goal.meta_equipamentos for goal in RegionalGoal.query.all()} == {3}


def test_goal_changes_require_admin(app, client, login_editor):
    login_editor()
    assert client.get("/rede/metas").status_code == 200
    assert client.post("/rede/metas", data=_goal_form("2026-03")).status_code == 403
    assert client.post("/rede/metas/restaurar", data={"mes": "2026-03"}).status_code == 403
    assert RegionalGoal.query.count() == 0


def test_record_exports(app, client, login_viewer):
    login_viewer()

    pdf = client.get("/rede/exportar/equipamentos.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["Content-Type"] == "application/pdf"
    assert 'filename="equipamentos.pdf"' in pdf.headers["Content-Disposition"]
    assert pdf.data.startswith(b"%PDF")

    xlsx = client.get("/rede/exportar/completo.xlsx")
    assert xlsx.status_code == 200
    assert 'filename="relatorio-completo.xlsx"' in xlsx.headers["Content-Disposition"]
    workbook = load_workbook(BytesIO(xlsx.data))
    assert workbook.sheetnames == ["Equipamentos", "Viaturas", "Solicitações"]
    sheet = workbook["Equipamentos"]
    assert sheet.cell(row=1, column=1).value == "Município"
    assert sheet.max_row == 1 + Equipamento.query.count()

    assert client.get("/rede/exportar/pessoas.pdf").status_code == 404
    assert client.get("/rede/exportar/equipamentos.csv").status_code == 404


def test_comparison_and_goal_downloads(app, client, login_viewer):
    login_viewer()

    page = client.get("/rede/comparativo?atual=2026-03&anterior=2026-02")
    assert page.status_code == 200
    assert "março de 2026".encode() in page.data

    pdf = client.get("/rede/comparativo.pdf?atual=2026-03&anterior=2026-02")
    assert pdf.status_code == 200
    assert 'filename="relatorio-comparativo-2026-03-vs-2026-02.pdf"' in pdf.headers["Content-Disposition"]

    xlsx = client.get("/rede/metas.xlsx?mes=2026-03")
    assert 'filename="metas-regionais-2026-03.xlsx"' in xlsx.headers["Content-Disposition"]
    workbook = load_workbook(BytesIO(xlsx.data))
    assert workbook.active.max_row == 15


def test_map_data_categories(app, client, login_viewer):
    login_viewer()
    response = client.get("/rede/mapa/dados.json")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["categorias"]["Fortaleza"] == 1
    assert payload["categorias"]["Iguatu"] == 4
    assert payload["categorias"]["Crato"] == 5
    assert payload["categorias"]["Aracati"] == 6
    assert sum(payload["legenda"].values()) == 184
    assert payload["aliases"]["Itapagé"] == "Itapajé"
