"""
Regional and temporal aggregation over equipment, vehicle and request
records, plus monthly goal scoring.

Everything here is pure: callers pass already-loaded records (ORM rows or
plain mappings) and get dataclasses back. Timestamps that cannot be parsed
are left out of every subset.
"""

from __future__ import annotations

import calendar
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from redemulher.core.models import STATUS_EM_ANDAMENTO, OrgaoResponsavel, StatusSolicitacao, TipoEquipamento
from redemulher.core.municipios import (
    MUNICIPIOS_CEARA,
    TOTAL_MUNICIPIOS,
    RegiaoPlanejamento,
    get_municipios_por_regiao,
    get_regiao,
    regioes_list,
)
from redemulher.core.utils import local_today, month_key, month_label, shift_month, to_local

logger = logging.getLogger(__name__)


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def _value(raw: Any) -> Any:
    return raw.value if isinstance(raw, Enum) else raw


def _quantidade(record: Any) -> int:
    try:
        return max(int(_field(record, "quantidade", 0) or 0), 0)
    except (TypeError, ValueError):
        return 0


def _in_regiao(records: Iterable[Any], regiao: RegiaoPlanejamento) -> list[Any]:
    return [r for r in records if get_regiao(_field(r, "municipio")) == regiao]


# Period filter


def parse_timestamp(value: Any) -> datetime | None:
    """Return a naive local-time datetime, or None when the value is unusable.

    Datetimes and ISO strings without an offset are stored UTC values; plain
    dates are already calendar days and map to local midnight.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.debug("Ignoring unparseable timestamp %r", value)
            return None
    else:
        return None
    try:
        return to_local(parsed)
    except OverflowError:
        logger.debug("Ignoring out-of-range timestamp %r", value)
        return None


MIN_ANO = 1900
MAX_ANO = 2999


@dataclass(frozen=True)
class Period:
    start: datetime
    end: datetime

    @classmethod
    def month(cls, ano: int, mes: int) -> "Period":
        if not 1 <= mes <= 12:
            raise ValueError(f"Mês inválido: {mes}")
        if not MIN_ANO <= ano <= MAX_ANO:
            raise ValueError(f"Ano inválido: {ano}")
        last_day = calendar.monthrange(ano, mes)[1]
        return cls(
            start=datetime(ano, mes, 1),
            end=datetime.combine(date(ano, mes, last_day), time.max),
        )

    @classmethod
    def parse(cls, value: str) -> "Period":
        try:
            ano_raw, mes_raw = (value or "").strip().split("-")
            return cls.month(int(ano_raw), int(mes_raw))
        except ValueError as exc:
            raise ValueError(f"Período inválido: {value!r} (use AAAA-MM)") from exc

    @property
    def ano(self) -> int:
        return self.start.year

    @property
    def mes(self) -> int:
        return self.start.month

    @property
    def key(self) -> str:
        return month_key(self.ano, self.mes)

    @property
    def label(self) -> str:
        return month_label(self.ano, self.mes)

    def previous(self) -> "Period":
        return Period.month(*shift_month(self.ano, self.mes, -1))

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class PeriodSubsets:
    created: list[Any] = field(default_factory=list)
    existing: list[Any] = field(default_factory=list)


def split_by_period(records: Iterable[Any], period: Period, timestamp_field: str = "created_at") -> PeriodSubsets:
    subsets = PeriodSubsets()
    for record in records:
        moment = parse_timestamp(_field(record, timestamp_field))
        if moment is None:
            continue
        if moment <= period.end:
            subsets.existing.append(record)
            if moment >= period.start:
                subsets.created.append(record)
    return subsets


# Aggregator


def variation(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def coverage(municipios_com_equipamento: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return municipios_com_equipamento / total * 100


def municipios_com_equipamento(equipamentos: Iterable[Any]) -> set[str]:
    return {_field(e, "municipio") for e in equipamentos if _field(e, "municipio")}


def region_coverage(regiao: RegiaoPlanejamento, equipamentos: Iterable[Any]) -> float:
    membros = set(get_municipios_por_regiao(regiao))
    cobertos = municipios_com_equipamento(equipamentos) & membros
    return coverage(len(cobertos), len(membros))


@dataclass
class PeriodCounts:
    regiao: RegiaoPlanejamento | None
    total_municipios: int
    equipamentos: int = 0
    novos_equipamentos: int = 0
    viaturas: int = 0
    novas_viaturas: int = 0
    solicitacoes: int = 0
    novas_solicitacoes: int = 0
    solicitacoes_aprovadas: int = 0
    solicitacoes_inauguradas: int = 0
    equipamentos_com_patrulha: int = 0
    municipios_com_equipamento: int = 0

    @property
    def cobertura(self) -> float:
        return coverage(self.municipios_com_equipamento, self.total_municipios)


@dataclass
class PeriodStats:
    period: Period
    total: PeriodCounts
    por_regiao: dict[RegiaoPlanejamento, PeriodCounts]


def _count_period(
    regiao: RegiaoPlanejamento | None,
    total_municipios: int,
    equipamentos: PeriodSubsets,
    viaturas: PeriodSubsets,
    solicitacoes: PeriodSubsets,
) -> PeriodCounts:
    novos_status = Counter(_value(_field(s, "status")) for s in solicitacoes.created)
    return PeriodCounts(
        regiao=regiao,
        total_municipios=total_municipios,
        equipamentos=len(equipamentos.existing),
        novos_equipamentos=len(equipamentos.created),
        viaturas=sum(_quantidade(v) for v in viaturas.existing),
        novas_viaturas=sum(_quantidade(v) for v in viaturas.created),
        solicitacoes=len(solicitacoes.existing),
        novas_solicitacoes=len(solicitacoes.created),
        solicitacoes_aprovadas=novos_status[StatusSolicitacao.APROVADA.value],
        solicitacoes_inauguradas=novos_status[StatusSolicitacao.INAUGURADA.value],
        equipamentos_com_patrulha=sum(1 for e in equipamentos.existing if _field(e, "possui_patrulha")),
        municipios_com_equipamento=len(municipios_com_equipamento(equipamentos.existing)),
    )


def period_stats(
    ano: int,
    mes: int,
    equipamentos: Sequence[Any],
    viaturas: Sequence[Any],
    solicitacoes: Sequence[Any],
) -> PeriodStats:
    period = Period.month(ano, mes)
    eq = split_by_period(equipamentos, period)
    vt = split_by_period(viaturas, period)
    sl = split_by_period(solicitacoes, period)

    por_regiao: dict[RegiaoPlanejamento, PeriodCounts] = {}
    for regiao in regioes_list():
        por_regiao[regiao] = _count_period(
            regiao,
            len(get_municipios_por_regiao(regiao)),
            PeriodSubsets(_in_regiao(eq.created, regiao), _in_regiao(eq.existing, regiao)),
            PeriodSubsets(_in_regiao(vt.created, regiao), _in_regiao(vt.existing, regiao)),
            PeriodSubsets(_in_regiao(sl.created, regiao), _in_regiao(sl.existing, regiao)),
        )
    return PeriodStats(
        period=period,
        total=_count_period(None, TOTAL_MUNICIPIOS, eq, vt, sl),
        por_regiao=por_regiao,
    )


@dataclass(frozen=True)
class ComparisonMetric:
    key: str
    label: str
    atual: float
    anterior: float
    variacao: float
    percentual: bool


_PERCENT_METRICS = (
    ("equipamentos", "Equipamentos (acumulado)"),
    ("viaturas", "Viaturas (acumulado)"),
    ("solicitacoes", "Solicitações (acumulado)"),
    ("cobertura", "Cobertura estadual (%)"),
)
_DELTA_METRICS = (
    ("novos_equipamentos", "Novos equipamentos"),
    ("novas_viaturas", "Novas viaturas"),
    ("novas_solicitacoes", "Novas solicitações"),
    ("solicitacoes_aprovadas", "Solicitações aprovadas"),
    ("solicitacoes_inauguradas", "Solicitações inauguradas"),
)


def compare_periods(current: PeriodStats, previous: PeriodStats) -> list[ComparisonMetric]:
    rows: list[ComparisonMetric] = []
    for key, label in _PERCENT_METRICS:
        atual = getattr(current.total, key)
        anterior = getattr(previous.total, key)
        rows.append(ComparisonMetric(key, label, atual, anterior, variation(atual, anterior), True))
    for key, label in _DELTA_METRICS:
        atual = getattr(current.total, key)
        anterior = getattr(previous.total, key)
        rows.append(ComparisonMetric(key, label, atual, anterior, atual - anterior, False))
    return rows


@dataclass(frozen=True)
class RegionComparison:
    regiao: RegiaoPlanejamento
    atual: int
    anterior: int

    @property
    def diferenca(self) -> int:
        return self.atual - self.anterior


def region_comparison(current: PeriodStats, previous: PeriodStats) -> list[RegionComparison]:
    rows = []
    for regiao in regioes_list():
        atual = current.por_regiao[regiao].novos_equipamentos
        anterior = previous.por_regiao[regiao].novos_equipamentos
        if atual > 0 or anterior > 0:
            rows.append(RegionComparison(regiao, atual, anterior))
    return rows


@dataclass(frozen=True)
class EvolutionPoint:
    key: str
    label: str
    equipamentos: int
    viaturas: int
    solicitacoes: int


def evolution_series(
    ano: int,
    mes: int,
    meses: int,
    equipamentos: Sequence[Any],
    viaturas: Sequence[Any],
    solicitacoes: Sequence[Any],
) -> list[EvolutionPoint]:
    points = []
    for offset in range(meses - 1, -1, -1):
        period = Period.month(*shift_month(ano, mes, -offset))
        points.append(
            EvolutionPoint(
                key=period.key,
                label=period.label,
                equipamentos=len(split_by_period(equipamentos, period).existing),
                viaturas=sum(_quantidade(v) for v in split_by_period(viaturas, period).existing),
                solicitacoes=len(split_by_period(solicitacoes, period).existing),
            )
        )
    return points


# Dashboards


def patrol_house_municipios(equipamentos: Iterable[Any], solicitacoes: Iterable[Any]) -> set[str]:
    """Municipalities counted as having a patrol at a house, once each.

    Equipment with ``possui_patrulha`` wins; a request with
    ``recebeu_patrulha`` only counts for municipalities with no such equipment.
    """
    municipios = {_field(e, "municipio") for e in equipamentos if _field(e, "possui_patrulha")}
    for solicitacao in solicitacoes:
        if _field(solicitacao, "recebeu_patrulha"):
            municipios.add(_field(solicitacao, "municipio"))
    municipios.discard(None)
    return municipios


@dataclass
class DashboardStats:
    total_equipamentos: int
    equipamentos_por_tipo: dict[str, int]
    municipios_com_equipamento: int
    municipios_sem_equipamento: int
    equipamentos_com_patrulha: int
    total_viaturas: int
    viaturas_por_orgao: dict[str, int]
    municipios_com_viatura: int
    municipios_com_viatura_e_equipamento: int
    municipios_com_viatura_sem_equipamento: int
    total_solicitacoes: int
    solicitacoes_por_status: dict[str, int]
    solicitacoes_por_tipo: dict[str, int]

    @property
    def cobertura(self) -> float:
        return coverage(self.municipios_com_equipamento, TOTAL_MUNICIPIOS)


def dashboard_stats(
    equipamentos: Sequence[Any],
    viaturas: Sequence[Any],
    solicitacoes: Sequence[Any],
) -> DashboardStats:
    com_equipamento = municipios_com_equipamento(equipamentos)
    com_viatura = {_field(v, "municipio") for v in viaturas if _quantidade(v) > 0}

    por_tipo = {tipo.value: 0 for tipo in TipoEquipamento}
    for equipamento in equipamentos:
        por_tipo[_value(_field(equipamento, "tipo"))] = por_tipo.get(_value(_field(equipamento, "tipo")), 0) + 1

    por_orgao = {orgao.value: 0 for orgao in OrgaoResponsavel}
    for viatura in viaturas:
        orgao = _value(_field(viatura, "orgao_responsavel"))
        por_orgao[orgao] = por_orgao.get(orgao, 0) + _quantidade(viatura)

    por_status = {status.value: 0 for status in StatusSolicitacao}
    por_tipo_solicitado = {tipo.value: 0 for tipo in TipoEquipamento}
    for solicitacao in solicitacoes:
        status = _value(_field(solicitacao, "status"))
        tipo = _value(_field(solicitacao, "tipo_equipamento"))
        por_status[status] = por_status.get(status, 0) + 1
        por_tipo_solicitado[tipo] = por_tipo_solicitado.get(tipo, 0) + 1

    return DashboardStats(
        total_equipamentos=len(equipamentos),
        equipamentos_por_tipo=por_tipo,
        municipios_com_equipamento=len(com_equipamento),
        municipios_sem_equipamento=TOTAL_MUNICIPIOS - len(com_equipamento),
        equipamentos_com_patrulha=sum(1 for e in equipamentos if _field(e, "possui_patrulha")),
        total_viaturas=sum(_quantidade(v) for v in viaturas),
        viaturas_por_orgao=por_orgao,
        municipios_com_viatura=len(com_viatura),
        municipios_com_viatura_e_equipamento=len(com_viatura & com_equipamento),
        municipios_com_viatura_sem_equipamento=len(com_viatura - com_equipamento),
        total_solicitacoes=len(solicitacoes),
        solicitacoes_por_status=por_status,
        solicitacoes_por_tipo=por_tipo_solicitado,
    )


@dataclass
class RegionOverview:
    regiao: RegiaoPlanejamento
    total_municipios: int
    municipios_com_equipamento: int
    equipamentos: int
    equipamentos_por_tipo: dict[str, int]
    viaturas_vinculadas: int
    viaturas_nao_vinculadas: int
    patrulhas_casas: int
    solicitacoes: int
    solicitacoes_em_andamento: int

    @property
    def total_viaturas(self) -> int:
        return self.viaturas_vinculadas + self.viaturas_nao_vinculadas + self.patrulhas_casas

    @property
    def cobertura(self) -> float:
        return coverage(self.municipios_com_equipamento, self.total_municipios)


def regional_overview(
    equipamentos: Sequence[Any],
    viaturas: Sequence[Any],
    solicitacoes: Sequence[Any],
) -> list[RegionOverview]:
    em_andamento = {status.value for status in STATUS_EM_ANDAMENTO}
    patrulhas = patrol_house_municipios(equipamentos, solicitacoes)
    rows = []
    for regiao in regioes_list():
        membros = set(get_municipios_por_regiao(regiao))
        eq = _in_regiao(equipamentos, regiao)
        vt = _in_regiao(viaturas, regiao)
        sl = _in_regiao(solicitacoes, regiao)
        por_tipo = Counter(_value(_field(e, "tipo")) for e in eq)
        rows.append(
            RegionOverview(
                regiao=regiao,
                total_municipios=len(membros),
                municipios_com_equipamento=len(municipios_com_equipamento(eq)),
                equipamentos=len(eq),
                equipamentos_por_tipo={tipo.value: por_tipo[tipo.value] for tipo in TipoEquipamento},
                viaturas_vinculadas=sum(_quantidade(v) for v in vt if _field(v, "vinculada_equipamento")),
                viaturas_nao_vinculadas=sum(_quantidade(v) for v in vt if not _field(v, "vinculada_equipamento")),
                patrulhas_casas=len(patrulhas & membros),
                solicitacoes=len(sl),
                solicitacoes_em_andamento=sum(1 for s in sl if _value(_field(s, "status")) in em_andamento),
            )
        )
    rows.sort(key=lambda row: row.cobertura, reverse=True)
    return rows


def regional_totals(overview: Sequence[RegionOverview]) -> dict[str, float]:
    total_municipios = sum(row.total_municipios for row in overview)
    com_equipamento = sum(row.municipios_com_equipamento for row in overview)
    return {
        "total_municipios": total_municipios,
        "municipios_com_equipamento": com_equipamento,
        "equipamentos": sum(row.equipamentos for row in overview),
        "viaturas_vinculadas": sum(row.viaturas_vinculadas for row in overview),
        "viaturas_nao_vinculadas": sum(row.viaturas_nao_vinculadas for row in overview),
        "patrulhas_casas": sum(row.patrulhas_casas for row in overview),
        "total_viaturas": sum(row.total_viaturas for row in overview),
        "solicitacoes": sum(row.solicitacoes for row in overview),
        "solicitacoes_em_andamento": sum(row.solicitacoes_em_andamento for row in overview),
        "cobertura": coverage(com_equipamento, total_municipios),
    }


_RADAR_METRICS = ("equipamentos", "total_viaturas", "solicitacoes")


def radar_data(overview: Sequence[RegionOverview]) -> list[dict[str, Any]]:
    maximos = {metric: max((getattr(row, metric) for row in overview), default=0) for metric in _RADAR_METRICS}
    data = []
    for row in overview:
        point: dict[str, Any] = {"regiao": row.regiao.value, "cobertura": round(row.cobertura, 1)}
        for metric in _RADAR_METRICS:
            maximo = maximos[metric]
            point[metric] = round(getattr(row, metric) / maximo * 100, 1) if maximo else 0.0
        data.append(point)
    return data


MAP_CATEGORY_LABELS = {
    1: TipoEquipamento.BRASILEIRA.value,
    2: TipoEquipamento.CEARENSE.value,
    3: TipoEquipamento.MUNICIPAL.value,
    4: TipoEquipamento.SALA_LILAS.value,
    5: "Somente viatura",
    6: "Sem cobertura",
}
_TIPO_PRIORIDADE = {
    TipoEquipamento.BRASILEIRA.value: 1,
    TipoEquipamento.CEARENSE.value: 2,
    TipoEquipamento.MUNICIPAL.value: 3,
    TipoEquipamento.SALA_LILAS.value: 4,
}


@dataclass
class MapData:
    categorias: dict[str, int]
    legenda: dict[int, int]


def map_categories(equipamentos: Iterable[Any], viaturas: Iterable[Any]) -> MapData:
    categorias = {municipio: 6 for municipio in MUNICIPIOS_CEARA}
    for viatura in viaturas:
        municipio = _field(viatura, "municipio")
        if municipio in categorias and _quantidade(viatura) > 0:
            categorias[municipio] = min(categorias[municipio], 5)
    for equipamento in equipamentos:
        municipio = _field(equipamento, "municipio")
        prioridade = _TIPO_PRIORIDADE.get(_value(_field(equipamento, "tipo")))
        if municipio in categorias and prioridade:
            categorias[municipio] = min(categorias[municipio], prioridade)
    legenda = Counter(categorias.values())
    return MapData(categorias=categorias, legenda={cat: legenda.get(cat, 0) for cat in MAP_CATEGORY_LABELS})


# Goal progress


@dataclass(frozen=True)
class GoalTargets:
    equipamentos: int
    viaturas: int
    cobertura: float


DEFAULT_GOAL = GoalTargets(equipamentos=5, viaturas=10, cobertura=50.0)


@dataclass(frozen=True)
class RegionGoal:
    regiao: RegiaoPlanejamento
    ano: int
    mes: int
    targets: GoalTargets
    is_default: bool


def goals_with_defaults(ano: int, mes: int, stored: Iterable[Any] = ()) -> dict[RegiaoPlanejamento, RegionGoal]:
    explicit: dict[RegiaoPlanejamento, GoalTargets] = {}
    for goal in stored:
        if _field(goal, "ano") != ano or _field(goal, "mes") != mes:
            continue
        explicit[RegiaoPlanejamento(_field(goal, "regiao"))] = GoalTargets(
            equipamentos=int(_field(goal, "meta_equipamentos")),
            viaturas=int(_field(goal, "meta_viaturas")),
            cobertura=float(_field(goal, "meta_cobertura")),
        )
    return {
        regiao: RegionGoal(
            regiao=regiao,
            ano=ano,
            mes=mes,
            targets=explicit.get(regiao, DEFAULT_GOAL),
            is_default=regiao not in explicit,
        )
        for regiao in regioes_list()
    }


def progress(actual: float, goal: float) -> float:
    if goal <= 0:
        return 0.0
    return max(0.0, min(100.0, actual / goal * 100))


def expected_progress(ano: int, mes: int, today: date | None = None) -> float:
    today = today or local_today()
    if (today.year, today.month) != (ano, mes):
        return 100.0
    return today.day / calendar.monthrange(ano, mes)[1] * 100


class GoalStatus(str, Enum):
    ACHIEVED = "achieved"
    ON_TRACK = "on-track"
    AT_RISK = "at-risk"
    BEHIND = "behind"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    GoalStatus.ACHIEVED: "Meta atingida",
    GoalStatus.ON_TRACK: "No ritmo",
    GoalStatus.AT_RISK: "Em risco",
    GoalStatus.BEHIND: "Atrasada",
}

ON_TRACK_TOLERANCE = 10
AT_RISK_TOLERANCE = 30


def classify_status(overall: float, expected: float) -> GoalStatus:
    if overall >= 100:
        return GoalStatus.ACHIEVED
    if overall >= expected - ON_TRACK_TOLERANCE:
        return GoalStatus.ON_TRACK
    if overall >= expected - AT_RISK_TOLERANCE:
        return GoalStatus.AT_RISK
    return GoalStatus.BEHIND


@dataclass(frozen=True)
class RegionActuals:
    equipamentos: int
    viaturas: int
    cobertura: float


@dataclass(frozen=True)
class RegionProgress:
    regiao: RegiaoPlanejamento
    goal: GoalTargets
    actual: RegionActuals
    progresso_equipamentos: float
    progresso_viaturas: float
    progresso_cobertura: float
    geral: float
    esperado: float
    status: GoalStatus


def score_region(
    regiao: RegiaoPlanejamento,
    goal: GoalTargets,
    actual: RegionActuals,
    expected: float,
) -> RegionProgress:
    p_equipamentos = progress(actual.equipamentos, goal.equipamentos)
    p_viaturas = progress(actual.viaturas, goal.viaturas)
    p_cobertura = progress(actual.cobertura, goal.cobertura)
    geral = (p_equipamentos + p_viaturas + p_cobertura) / 3
    return RegionProgress(
        regiao=regiao,
        goal=goal,
        actual=actual,
        progresso_equipamentos=p_equipamentos,
        progresso_viaturas=p_viaturas,
        progresso_cobertura=p_cobertura,
        geral=geral,
        esperado=expected,
        status=classify_status(geral, expected),
    )


def regional_goal_progress(
    ano: int,
    mes: int,
    equipamentos: Sequence[Any],
    viaturas: Sequence[Any],
    goals: Iterable[Any] = (),
    today: date | None = None,
) -> list[RegionProgress]:
    stats = period_stats(ano, mes, equipamentos, viaturas, [])
    metas = goals_with_defaults(ano, mes, goals)
    esperado = expected_progress(ano, mes, today)
    rows = []
    for regiao in regioes_list():
        counts = stats.por_regiao[regiao]
        actual = RegionActuals(
            equipamentos=counts.novos_equipamentos,
            viaturas=counts.novas_viaturas,
            cobertura=counts.cobertura,
        )
        rows.append(score_region(regiao, metas[regiao].targets, actual, esperado))
    return rows


@dataclass(frozen=True)
class GoalSummary:
    por_status: dict[GoalStatus, int]
    media_geral: float
    esperado: float


def goal_summary(rows: Sequence[RegionProgress]) -> GoalSummary:
    contagem = Counter(row.status for row in rows)
    return GoalSummary(
        por_status={status: contagem.get(status, 0) for status in GoalStatus},
        media_geral=sum(row.geral for row in rows) / len(rows) if rows else 0.0,
        esperado=rows[0].esperado if rows else 100.0,
    )
