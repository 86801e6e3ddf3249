from __future__ import annotations

from datetime import date, datetime

import pytest

from redemulher.core.municipios import (
    GEOJSON_NAME_MAP,
    MUNICIPIOS_CEARA,
    MUNICIPIOS_POR_REGIAO,
    TOTAL_MUNICIPIOS,
    RegiaoPlanejamento,
    get_municipios_por_regiao,
    get_regiao,
    is_municipio,
    normalize_municipio_name,
    parse_regiao,
    regioes_list,
)
from redemulher.core.utils import format_nup, month_label, normalize_nup, parse_bool, shift_month
from redemulher.rede.analytics import (
    DEFAULT_GOAL,
    GoalStatus,
    GoalTargets,
    Period,
    RegionActuals,
    classify_status,
    compare_periods,
    coverage,
    dashboard_stats,
    evolution_series,
    expected_progress,
    goal_summary,
    goals_with_defaults,
    map_categories,
    parse_timestamp,
    patrol_house_municipios,
    period_stats,
    progress,
    region_coverage,
    regional_goal_progress,
    regional_overview,
    score_region,
    split_by_period,
    variation,
)
from redemulher.rede.reports import format_count, format_pct, format_signed


def test_every_municipio_belongs_to_exactly_one_regiao():
    assert len(regioes_list()) == 14
    all_names = [m for municipios in MUNICIPIOS_POR_REGIAO.values() for m in municipios]
    assert len(all_names) == TOTAL_MUNICIPIOS == 184
    assert len(set(all_names)) == 184
    assert sorted(all_names) == sorted(MUNICIPIOS_CEARA)
    for regiao, municipios in MUNICIPIOS_POR_REGIAO.items():
        for municipio in municipios:
            assert get_regiao(municipio) == regiao


def test_regiao_lookup_helpers():
    assert get_regiao("Fortaleza") == RegiaoPlanejamento.GRANDE_FORTALEZA
    assert get_regiao("Juazeiro do Norte") == RegiaoPlanejamento.CARIRI
    assert get_regiao("Lisboa") is None
    assert get_regiao(None) is None
    assert not is_municipio("")
    assert get_municipios_por_regiao("Região inexistente") == ()
    assert "Sobral" in get_municipios_por_regiao("Sertão de Sobral")
    assert parse_regiao("Cariri") == RegiaoPlanejamento.CARIRI
    assert parse_regiao("sertao_central") == RegiaoPlanejamento.SERTAO_CENTRAL
    assert parse_regiao("nada") is None
    assert parse_regiao("") is None


def test_geojson_aliases_point_to_known_municipios():
    for alias, municipio in GEOJSON_NAME_MAP.items():
        assert is_municipio(municipio)
        assert normalize_municipio_name(alias) == municipio
    assert normalize_municipio_name("Fortaleza") == "Fortaleza"


@pytest.mark.parametrize(
    ("current", "previous", "expected"),
    [(0, 0, 0.0), (5, 0, 100.0), (10, 20, -50.0), (30, 20, 50.0)],
)
def test_variation(current, previous, expected):
    assert variation(current, previous) == pytest.approx(expected)


def test_coverage_counts_each_municipio_once():
    assert coverage(4, 10) == pytest.approx(40.0)
    assert coverage(3, 0) == 0.0

    regiao = RegiaoPlanejamento.CARIRI
    membros = get_municipios_por_regiao(regiao)
    cobertos = membros[:4]
    equipamentos = [{"municipio": m} for m in cobertos] + [
        {"municipio": cobertos[0]},
        {"municipio": cobertos[1]},
        {"municipio": "Fortaleza"},
    ]
    assert region_coverage(regiao, equipamentos) == pytest.approx(4 / len(membros) * 100)


def test_split_by_period_excludes_unparseable_timestamps():
    period = Period.month(2026, 3)
    records = [
        {"id": 1, "created_at": "2026-03-10T12:00:00"},
        {"id": 2, "created_at": "2026-02-27T08:00:00Z"},
        {"id": 3, "created_at": "2026-04-01T03:00:00Z"},
        {"id": 4, "created_at": "ontem"},
        {"id": 5, "created_at": None},
        {"id": 6, "created_at": datetime(2026, 3, 31, 23, 59, 59)},
        {"id": 7, "created_at": date(2026, 3, 1)},
    ]
    subsets = split_by_period(records, period)
    assert [r["id"] for r in subsets.created] == [1, 6, 7]
    assert [r["id"] for r in subsets.existing] == [1, 2, 6, 7]


def test_month_boundaries_follow_local_time():
    marco = Period.month(2026, 3)
    abril = Period.month(2026, 4)
    # 02:30 UTC on April 1st is still March 31st in Fortaleza (UTC-3).
    late_march = {"created_at": "2026-04-01T02:30:00Z"}
    assert parse_timestamp(late_march["created_at"]) == datetime(2026, 3, 31, 23, 30)
    assert split_by_period([late_march], marco).created == [late_march]
    assert split_by_period([late_march], abril).created == []

    assert parse_timestamp(datetime(2026, 4, 1, 1, 0)) == datetime(2026, 3, 31, 22, 0)
    assert parse_timestamp("2026-04-01T09:00:00-03:00") == datetime(2026, 4, 1, 9, 0)
    assert parse_timestamp(date(2026, 4, 1)) == datetime(2026, 4, 1)
    assert parse_timestamp("0001-01-01T00:00:00") is None


def test_period_parse_and_navigation():
    period = Period.parse("2026-01")
    assert period.key == "2026-01"
    assert period.previous().key == "2025-12"
    assert period.label == "janeiro de 2026"
    with pytest.raises(ValueError):
        Period.parse("2026-13")
    with pytest.raises(ValueError):
        Period.parse("março")
    with pytest.raises(ValueError):
        Period.parse("0001-01")
    with pytest.raises(ValueError):
        Period.month(1900, 1).previous()


def test_period_stats_and_comparison():
    equipamentos = [
        {"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira", "possui_patrulha": True,
         "created_at": "2026-02-10T10:00:00"},
        {"municipio": "Sobral", "tipo": "Casa da Mulher Cearense", "possui_patrulha": False,
         "created_at": "2026-03-05T10:00:00"},
    ]
    viaturas = [
        {"municipio": "Crato", "quantidade": 2, "created_at": "2026-03-02T10:00:00"},
        {"municipio": "Fortaleza", "quantidade": 3, "created_at": "2026-01-02T10:00:00"},
    ]
    solicitacoes = [
        {"municipio": "Quixadá", "status": "Aprovada", "created_at": "2026-03-20T10:00:00"},
    ]
    atual = period_stats(2026, 3, equipamentos, viaturas, solicitacoes)
    anterior = period_stats(2026, 2, equipamentos, viaturas, solicitacoes)

    assert atual.total.equipamentos == 2
    assert atual.total.novos_equipamentos == 1
    assert atual.total.viaturas == 5
    assert atual.total.novas_viaturas == 2
    assert atual.total.solicitacoes_aprovadas == 1
    assert atual.por_regiao[RegiaoPlanejamento.SERTAO_DE_SOBRAL].novos_equipamentos == 1
    assert anterior.total.viaturas == 3

    metricas = {m.key: m for m in compare_periods(atual, anterior)}
    assert metricas["equipamentos"].variacao == pytest.approx(100.0)
    assert metricas["equipamentos"].percentual
    assert metricas["viaturas"].variacao == pytest.approx(200 / 3)
    assert metricas["novas_viaturas"].variacao == 2
    assert not metricas["novas_viaturas"].percentual


def test_evolution_series_is_cumulative_and_ordered():
    equipamentos = [
        {"municipio": "Fortaleza", "created_at": "2026-01-15T10:00:00"},
        {"municipio": "Sobral", "created_at": "2026-03-15T10:00:00"},
    ]
    points = evolution_series(2026, 3, 3, equipamentos, [], [])
    assert [p.key for p in points] == ["2026-01", "2026-02", "2026-03"]
    assert [p.equipamentos for p in points] == [1, 1, 2]


def test_patrol_at_a_house_counted_once_per_municipio():
    equipamentos = [
        {"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira", "possui_patrulha": True},
        {"municipio": "Fortaleza", "tipo": "Sala Lilás", "possui_patrulha": True},
    ]
    solicitacoes = [
        {"municipio": "Fortaleza", "status": "Inaugurada", "recebeu_patrulha": True},
        {"municipio": "Quixadá", "status": "Aprovada", "recebeu_patrulha": True},
        {"municipio": "Crato", "status": "Recebida", "recebeu_patrulha": False},
    ]
    assert patrol_house_municipios(equipamentos, solicitacoes) == {"Fortaleza", "Quixadá"}

    overview = {row.regiao: row for row in regional_overview(equipamentos, [], solicitacoes)}
    assert overview[RegiaoPlanejamento.GRANDE_FORTALEZA].patrulhas_casas == 1
    assert overview[RegiaoPlanejamento.SERTAO_CENTRAL].patrulhas_casas == 1
    assert overview[RegiaoPlanejamento.CARIRI].solicitacoes_em_andamento == 1


def test_regional_overview_sorted_by_coverage():
    equipamentos = [{"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira"}]
    rows = regional_overview(equipamentos, [], [])
    assert rows[0].regiao == RegiaoPlanejamento.GRANDE_FORTALEZA
    assert rows[0].cobertura > 0
    assert all(row.cobertura == 0 for row in rows[1:])


def test_dashboard_stats_splits_vehicle_municipios():
    equipamentos = [{"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira", "possui_patrulha": True}]
    viaturas = [
        {"municipio": "Fortaleza", "orgao_responsavel": "PMCE", "quantidade": 3},
        {"municipio": "Crato", "orgao_responsavel": "Guarda Municipal", "quantidade": 2},
        {"municipio": "Iguatu", "orgao_responsavel": "PMCE", "quantidade": 0},
    ]
    stats = dashboard_stats(equipamentos, viaturas, [])
    assert stats.total_viaturas == 5
    assert stats.viaturas_por_orgao == {"PMCE": 3, "Guarda Municipal": 2}
    assert stats.municipios_com_viatura == 2
    assert stats.municipios_com_viatura_e_equipamento == 1
    assert stats.municipios_com_viatura_sem_equipamento == 1
    assert stats.municipios_sem_equipamento == 183


def test_map_categories_prefer_strongest_equipment():
    equipamentos = [
        {"municipio": "Fortaleza", "tipo": "Sala Lilás"},
        {"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira"},
        {"municipio": "Iguatu", "tipo": "Sala Lilás"},
    ]
    viaturas = [
        {"municipio": "Crato", "quantidade": 2},
        {"municipio": "Iguatu", "quantidade": 1},
    ]
    data = map_categories(equipamentos, viaturas)
    assert data.categorias["Fortaleza"] == 1
    assert data.categorias["Iguatu"] == 4
    assert data.categorias["Crato"] == 5
    assert data.categorias["Aracati"] == 6
    assert sum(data.legenda.values()) == 184


def test_goals_default_when_nothing_stored():
    metas = goals_with_defaults(2026, 5)
    assert len(metas) == 14
    for goal in metas.values():
        assert goal.is_default
        assert goal.targets == GoalTargets(equipamentos=5, viaturas=10, cobertura=50.0)


def test_stored_goal_overrides_default_only_for_its_month():
    stored = [
        {"regiao": "Cariri", "ano": 2026, "mes": 5, "meta_equipamentos": 8, "meta_viaturas": 4, "meta_cobertura": 30},
        {"regiao": "Centro Sul", "ano": 2026, "mes": 6, "meta_equipamentos": 1, "meta_viaturas": 1, "meta_cobertura": 1},
    ]
    metas = goals_with_defaults(2026, 5, stored)
    assert metas[RegiaoPlanejamento.CARIRI].targets == GoalTargets(8, 4, 30.0)
    assert not metas[RegiaoPlanejamento.CARIRI].is_default
    assert metas[RegiaoPlanejamento.CENTRO_SUL].targets == DEFAULT_GOAL


@pytest.mark.parametrize(
    ("actual", "goal"),
    [(0, 0), (5, 0), (-3, 5), (50, 5), (2.5, 10), (100, 100)],
)
def test_progress_is_clamped(actual, goal):
    value = progress(actual, goal)
    assert 0.0 <= value <= 100.0


def test_achieved_regardless_of_expected():
    assert classify_status(100, 100) == GoalStatus.ACHIEVED
    assert classify_status(100, 0) == GoalStatus.ACHIEVED
    assert GoalStatus.ACHIEVED.label == "Meta atingida"


def test_on_track_mid_month():
    expected = expected_progress(2026, 4, today=date(2026, 4, 15))
    assert expected == pytest.approx(50.0)

    row = score_region(
        RegiaoPlanejamento.CARIRI,
        GoalTargets(equipamentos=5, viaturas=10, cobertura=50.0),
        RegionActuals(equipamentos=5, viaturas=3, cobertura=50.0),
        expected,
    )
    assert row.progresso_equipamentos == pytest.approx(100.0)
    assert row.progresso_viaturas == pytest.approx(30.0)
    assert row.progresso_cobertura == pytest.approx(100.0)
    assert row.geral == pytest.approx(76.67, abs=0.01)
    assert row.status == GoalStatus.ON_TRACK


def test_behind_late_in_month():
    expected = expected_progress(2026, 4, today=date(2026, 4, 25))
    assert expected == pytest.approx(83.33, abs=0.01)

    row = score_region(
        RegiaoPlanejamento.CARIRI,
        DEFAULT_GOAL,
        RegionActuals(equipamentos=0, viaturas=0, cobertura=0.0),
        expected,
    )
    assert row.geral == 0.0
    assert row.status == GoalStatus.BEHIND


def test_at_risk_band():
    assert classify_status(60, 83.3) == GoalStatus.AT_RISK
    assert classify_status(74, 83.3) == GoalStatus.ON_TRACK


def test_expected_progress_outside_current_month_is_full():
    assert expected_progress(2026, 3, today=date(2026, 4, 10)) == 100.0


def test_regional_goal_progress_uses_month_activity():
    equipamentos = [
        {"municipio": "Fortaleza", "tipo": "Casa da Mulher Brasileira", "created_at": "2026-04-03T09:00:00"},
        {"municipio": "Caucaia", "tipo": "Sala Lilás", "created_at": "2026-01-03T09:00:00"},
    ]
    viaturas = [{"municipio": "Fortaleza", "quantidade": 4, "created_at": "2026-04-04T09:00:00"}]
    rows = regional_goal_progress(2026, 4, equipamentos, viaturas, today=date(2026, 4, 15))
    by_regiao = {row.regiao: row for row in rows}
    grande_fortaleza = by_regiao[RegiaoPlanejamento.GRANDE_FORTALEZA]
    assert grande_fortaleza.actual.equipamentos == 1
    assert grande_fortaleza.actual.viaturas == 4
    assert grande_fortaleza.actual.cobertura > 0

    summary = goal_summary(rows)
    assert sum(summary.por_status.values()) == 14
    assert summary.esperado == pytest.approx(50.0)


def test_nup_mask_and_validation():
    assert format_nup("62000") == "62000"
    assert format_nup("620000012") == "62000.0012"
    assert format_nup("62000001234202411") == "62000.001234/2024-11"
    assert normalize_nup(" 62000.001234/2024-11 ") == "62000.001234/2024-11"
    assert normalize_nup("") is None
    with pytest.raises(ValueError):
        normalize_nup("12345")


def test_month_helpers_and_bools():
    assert shift_month(2026, 1, -1) == (2025, 12)
    assert shift_month(2026, 12, 1) == (2027, 1)
    assert month_label(2026, 3) == "março de 2026"
    assert parse_bool("on") and parse_bool("sim") and parse_bool(True)
    assert not parse_bool("") and not parse_bool(None) and not parse_bool("nao")


def test_report_number_formatting():
    assert format_pct(40) == "40.0%"
    assert format_pct(None) == "0.0%"
    assert format_count(2.6) == "3"
    assert format_signed(5) == "+5"
    assert format_signed(0) == "0"
    assert format_signed(-3) == "-3"
    assert format_signed(12.5, percent=True) == "+12.5%"
    assert format_signed(-50, percent=True) == "-50.0%"
