from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Mapping

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from redemulher.core.extensions import db
from redemulher.core.models import (
    Equipamento,
    OrgaoResponsavel,
    RegionalGoal,
    Solicitacao,
    StatusSolicitacao,
    TipoEquipamento,
    Viatura,
)
from redemulher.core.municipios import (
    MUNICIPIOS_POR_REGIAO,
    RegiaoPlanejamento,
    get_municipios_por_regiao,
    is_municipio,
    parse_regiao,
)
from redemulher.core.utils import local_today, normalize_nup, parse_bool
from redemulher.rede import analytics

logger = logging.getLogger(__name__)

PATRULHA_PADRAO = "Patrulha Maria da Penha"


@dataclass
class RecordSet:
    equipamentos: list[Equipamento]
    viaturas: list[Viatura]
    solicitacoes: list[Solicitacao]


def _commit(operacao: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database failure while trying to %s", operacao)
        raise ValueError(f"Erro ao {operacao}: {getattr(exc, 'orig', None) or exc}") from exc


def _text(payload: Mapping[str, object], key: str) -> str:
    return str(payload.get(key) or "").strip()


def _parse_municipio(value: str) -> str:
    municipio = (value or "").strip()
    if not municipio:
        raise ValueError("O município é obrigatório")
    if not is_municipio(municipio):
        raise ValueError(f"Município desconhecido: {municipio}")
    return municipio


def _parse_enum(enum_cls, value: str, field_name: str):
    raw = (value or "").strip()
    if not raw:
        raise ValueError(f"Informe {field_name}")
    try:
        return enum_cls(raw)
    except ValueError as exc:
        raise ValueError(f"Valor inválido para {field_name}: {raw}") from exc


def _parse_quantidade(value: object) -> int:
    raw = str(value if value is not None else "").strip()
    if not raw:
        return 1
    try:
        quantidade = int(raw)
    except ValueError as exc:
        raise ValueError("A quantidade deve ser um número inteiro") from exc
    if quantidade < 1:
        raise ValueError("A quantidade deve ser no mínimo 1")
    return quantidade


def _parse_optional_date(value: object, field_name: str) -> date | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Formato de data inválido para {field_name}") from exc


def _parse_anexos(value: object) -> list[str]:
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value or "").splitlines()
    return [str(item).strip() for item in items if str(item).strip()]


def _optional_enum(enum_cls, value: str | None):
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        return False


def _filter_regiao(query, column, regiao_raw: str | None):
    raw = (regiao_raw or "").strip()
    if not raw:
        return query
    regiao = parse_regiao(raw)
    if regiao is None:
        return None
    return query.filter(column.in_(get_municipios_por_regiao(regiao)))


def load_records() -> RecordSet:
    return RecordSet(
        equipamentos=Equipamento.query.order_by(Equipamento.created_at.desc()).all(),
        viaturas=Viatura.query.order_by(Viatura.created_at.desc()).all(),
        solicitacoes=Solicitacao.query.order_by(Solicitacao.created_at.desc()).all(),
    )


# Equipamentos


def list_equipamentos(filters: Mapping[str, str] | None = None) -> list[Equipamento]:
    filters = filters or {}
    query = Equipamento.query
    term = (filters.get("q") or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Equipamento.municipio.ilike(pattern),
                Equipamento.responsavel.ilike(pattern),
                Equipamento.endereco.ilike(pattern),
            )
        )
    tipo = _optional_enum(TipoEquipamento, filters.get("tipo"))
    if tipo is False:
        return []
    if tipo:
        query = query.filter(Equipamento.tipo == tipo)
    patrulha = (filters.get("patrulha") or "").strip().lower()
    if patrulha in {"sim", "nao"}:
        query = query.filter(Equipamento.possui_patrulha.is_(patrulha == "sim"))
    query = _filter_regiao(query, Equipamento.municipio, filters.get("regiao"))
    if query is None:
        return []
    return query.order_by(Equipamento.created_at.desc(), Equipamento.id.desc()).all()


def equipamento_by_id(equipamento_id: int) -> Equipamento:
    equipamento = db.session.get(Equipamento, equipamento_id)
    if not equipamento:
        raise ValueError("Equipamento não encontrado")
    return equipamento


def create_equipamento(payload: Mapping[str, object]) -> Equipamento:
    equipamento = Equipamento(
        municipio=_parse_municipio(_text(payload, "municipio")),
        tipo=_parse_enum(TipoEquipamento, _text(payload, "tipo"), "o tipo de equipamento"),
        possui_patrulha=parse_bool(payload.get("possui_patrulha")),
        endereco=_text(payload, "endereco"),
        telefone=_text(payload, "telefone"),
        responsavel=_text(payload, "responsavel"),
        observacoes=_text(payload, "observacoes"),
    )
    db.session.add(equipamento)
    _commit("criar equipamento")
    logger.info("Equipamento %s criado em %s", equipamento.id, equipamento.municipio)
    return equipamento


def _apply(record, changes: dict[str, object]) -> None:
    for key, value in changes.items():
        setattr(record, key, value)


def update_equipamento(equipamento_id: int, payload: Mapping[str, object]) -> Equipamento:
    equipamento = equipamento_by_id(equipamento_id)
    changes: dict[str, object] = {}
    if "municipio" in payload:
        changes["municipio"] = _parse_municipio(_text(payload, "municipio"))
    if "tipo" in payload:
        changes["tipo"] = _parse_enum(TipoEquipamento, _text(payload, "tipo"), "o tipo de equipamento")
    if "possui_patrulha" in payload:
        changes["possui_patrulha"] = parse_bool(payload.get("possui_patrulha"))
    for key in ("endereco", "telefone", "responsavel", "observacoes"):
        if key in payload:
            changes[key] = _text(payload, key)
    _apply(equipamento, changes)
    _commit("atualizar equipamento")
    logger.info("Equipamento %s atualizado", equipamento.id)
    return equipamento


def delete_equipamento(equipamento_id: int) -> None:
    equipamento = equipamento_by_id(equipamento_id)
    vinculadas = Viatura.query.filter_by(equipamento_id=equipamento.id).all()
    for viatura in vinculadas:
        viatura.vinculada_equipamento = False
        viatura.equipamento_id = None
    Solicitacao.query.filter_by(equipamento_id=equipamento.id).update({"equipamento_id": None})
    db.session.flush()
    db.session.delete(equipamento)
    _commit("excluir equipamento")
    logger.info("Equipamento %s excluído; %s viaturas desvinculadas", equipamento_id, len(vinculadas))


# Viaturas


def list_viaturas(filters: Mapping[str, str] | None = None) -> list[Viatura]:
    filters = filters or {}
    query = Viatura.query
    term = (filters.get("q") or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Viatura.municipio.ilike(pattern),
                Viatura.tipo_patrulha.ilike(pattern),
                Viatura.responsavel.ilike(pattern),
            )
        )
    orgao = _optional_enum(OrgaoResponsavel, filters.get("orgao"))
    if orgao is False:
        return []
    if orgao:
        query = query.filter(Viatura.orgao_responsavel == orgao)
    vinculada = (filters.get("vinculada") or "").strip().lower()
    if vinculada in {"sim", "nao"}:
        query = query.filter(Viatura.vinculada_equipamento.is_(vinculada == "sim"))
    query = _filter_regiao(query, Viatura.municipio, filters.get("regiao"))
    if query is None:
        return []
    return query.order_by(Viatura.created_at.desc(), Viatura.id.desc()).all()


def viatura_by_id(viatura_id: int) -> Viatura:
    viatura = db.session.get(Viatura, viatura_id)
    if not viatura:
        raise ValueError("Viatura não encontrada")
    return viatura


def _resolve_vinculo(vinculada: bool, equipamento_raw: object) -> int | None:
    if not vinculada:
        return None
    raw = str(equipamento_raw or "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise ValueError("Equipamento vinculado inválido")
    return equipamento_by_id(int(raw)).id


def create_viatura(payload: Mapping[str, object]) -> Viatura:
    vinculada = parse_bool(payload.get("vinculada_equipamento"))
    viatura = Viatura(
        municipio=_parse_municipio(_text(payload, "municipio")),
        tipo_patrulha=_text(payload, "tipo_patrulha") or PATRULHA_PADRAO,
        vinculada_equipamento=vinculada,
        equipamento_id=_resolve_vinculo(vinculada, payload.get("equipamento_id")),
        orgao_responsavel=_parse_enum(OrgaoResponsavel, _text(payload, "orgao_responsavel"), "o órgão responsável"),
        quantidade=_parse_quantidade(payload.get("quantidade")),
        data_implantacao=_parse_optional_date(payload.get("data_implantacao"), "data de implantação"),
        responsavel=_text(payload, "responsavel"),
        observacoes=_text(payload, "observacoes"),
    )
    db.session.add(viatura)
    _commit("criar viatura")
    logger.info("Viatura %s criada em %s (quantidade=%s)", viatura.id, viatura.municipio, viatura.quantidade)
    return viatura


def update_viatura(viatura_id: int, payload: Mapping[str, object]) -> Viatura:
    viatura = viatura_by_id(viatura_id)
    changes: dict[str, object] = {}
    if "municipio" in payload:
        changes["municipio"] = _parse_municipio(_text(payload, "municipio"))
    if "tipo_patrulha" in payload:
        changes["tipo_patrulha"] = _text(payload, "tipo_patrulha") or PATRULHA_PADRAO
    if "orgao_responsavel" in payload:
        changes["orgao_responsavel"] = _parse_enum(
            OrgaoResponsavel, _text(payload, "orgao_responsavel"), "o órgão responsável"
        )
    if "quantidade" in payload:
        changes["quantidade"] = _parse_quantidade(payload.get("quantidade"))
    if "data_implantacao" in payload:
        changes["data_implantacao"] = _parse_optional_date(payload.get("data_implantacao"), "data de implantação")
    if "vinculada_equipamento" in payload or "equipamento_id" in payload:
        vinculada = parse_bool(payload.get("vinculada_equipamento", viatura.vinculada_equipamento))
        changes["vinculada_equipamento"] = vinculada
        changes["equipamento_id"] = _resolve_vinculo(vinculada, payload.get("equipamento_id", viatura.equipamento_id))
    for key in ("responsavel", "observacoes"):
        if key in payload:
            changes[key] = _text(payload, key)
    _apply(viatura, changes)
    _commit("atualizar viatura")
    logger.info("Viatura %s atualizada", viatura.id)
    return viatura


def delete_viatura(viatura_id: int) -> None:
    viatura = viatura_by_id(viatura_id)
    db.session.delete(viatura)
    _commit("excluir viatura")
    logger.info("Viatura %s excluída", viatura_id)


# Solicitacoes


def list_solicitacoes(filters: Mapping[str, str] | None = None) -> list[Solicitacao]:
    filters = filters or {}
    query = Solicitacao.query
    term = (filters.get("q") or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Solicitacao.municipio.ilike(pattern),
                Solicitacao.nup.ilike(pattern),
                Solicitacao.observacoes.ilike(pattern),
            )
        )
    status = _optional_enum(StatusSolicitacao, filters.get("status"))
    tipo = _optional_enum(TipoEquipamento, filters.get("tipo"))
    if status is False or tipo is False:
        return []
    if status:
        query = query.filter(Solicitacao.status == status)
    if tipo:
        query = query.filter(Solicitacao.tipo_equipamento == tipo)
    query = _filter_regiao(query, Solicitacao.municipio, filters.get("regiao"))
    if query is None:
        return []
    return query.order_by(Solicitacao.created_at.desc(), Solicitacao.id.desc()).all()


def solicitacao_by_id(solicitacao_id: int) -> Solicitacao:
    solicitacao = db.session.get(Solicitacao, solicitacao_id)
    if not solicitacao:
        raise ValueError("Solicitação não encontrada")
    return solicitacao


_MARCOS = ("recebeu_patrulha", "guarda_municipal_estruturada", "kit_athena_entregue", "capacitacao_realizada")


def create_solicitacao(payload: Mapping[str, object]) -> Solicitacao:
    status_raw = _text(payload, "status")
    solicitacao = Solicitacao(
        municipio=_parse_municipio(_text(payload, "municipio")),
        data_solicitacao=_parse_optional_date(payload.get("data_solicitacao"), "data da solicitação") or local_today(),
        tipo_equipamento=_parse_enum(TipoEquipamento, _text(payload, "tipo_equipamento"), "o tipo de equipamento"),
        status=_parse_enum(StatusSolicitacao, status_raw, "o status") if status_raw else StatusSolicitacao.RECEBIDA,
        nup=normalize_nup(_text(payload, "nup")),
        observacoes=_text(payload, "observacoes"),
        anexos=_parse_anexos(payload.get("anexos")),
        **{marco: parse_bool(payload.get(marco)) for marco in _MARCOS},
    )
    db.session.add(solicitacao)
    _commit("criar solicitação")
    logger.info("Solicitação %s criada em %s", solicitacao.id, solicitacao.municipio)
    return solicitacao


def update_solicitacao(solicitacao_id: int, payload: Mapping[str, object]) -> Solicitacao:
    solicitacao = solicitacao_by_id(solicitacao_id)
    changes: dict[str, object] = {}
    if "municipio" in payload:
        changes["municipio"] = _parse_municipio(_text(payload, "municipio"))
    if "data_solicitacao" in payload:
        data_solicitacao = _parse_optional_date(payload.get("data_solicitacao"), "data da solicitação")
        if data_solicitacao:
            changes["data_solicitacao"] = data_solicitacao
    if "tipo_equipamento" in payload:
        changes["tipo_equipamento"] = _parse_enum(
            TipoEquipamento, _text(payload, "tipo_equipamento"), "o tipo de equipamento"
        )
    if "status" in payload:
        changes["status"] = _parse_enum(StatusSolicitacao, _text(payload, "status"), "o status")
    if "nup" in payload:
        changes["nup"] = normalize_nup(_text(payload, "nup"))
    if "observacoes" in payload:
        changes["observacoes"] = _text(payload, "observacoes")
    if "anexos" in payload:
        changes["anexos"] = _parse_anexos(payload.get("anexos"))
    for marco in _MARCOS:
        if marco in payload:
            changes[marco] = parse_bool(payload.get(marco))
    _apply(solicitacao, changes)
    _commit("atualizar solicitação")
    logger.info("Solicitação %s atualizada (status=%s)", solicitacao.id, solicitacao.status.value)
    return solicitacao


def delete_solicitacao(solicitacao_id: int) -> None:
    solicitacao = solicitacao_by_id(solicitacao_id)
    db.session.delete(solicitacao)
    _commit("excluir solicitação")
    logger.info("Solicitação %s excluída", solicitacao_id)


def promote_solicitacao(solicitacao_id: int) -> Equipamento:
    """Create the equipment for an inaugurated request; the request stays as history."""
    solicitacao = solicitacao_by_id(solicitacao_id)
    if solicitacao.status != StatusSolicitacao.INAUGURADA:
        raise ValueError("Apenas solicitações com status Inaugurada podem ser transformadas em equipamento")
    if solicitacao.equipamento_id is not None:
        raise ValueError("Esta solicitação já foi transformada em equipamento")

    observacoes = f"Criado a partir da solicitação {solicitacao.id}. {solicitacao.observacoes or ''}".strip()
    equipamento = Equipamento(
        municipio=solicitacao.municipio,
        tipo=solicitacao.tipo_equipamento,
        possui_patrulha=solicitacao.recebeu_patrulha,
        endereco="",
        telefone="",
        responsavel="",
        observacoes=observacoes,
    )
    db.session.add(equipamento)
    db.session.flush()
    solicitacao.equipamento_id = equipamento.id
    _commit("transformar solicitação em equipamento")
    logger.info("Solicitação %s transformada no equipamento %s", solicitacao.id, equipamento.id)
    return equipamento


# Metas regionais


def list_goals(ano: int, mes: int) -> list[RegionalGoal]:
    return RegionalGoal.query.filter_by(ano=ano, mes=mes).all()


def _parse_meta(value: object, field_name: str, maximo: float | None = None, inteiro: bool = False) -> float:
    raw = str(value if value is not None else "").strip().replace(",", ".")
    if not raw:
        raise ValueError(f"Informe {field_name}")
    try:
        numero = float(raw)
    except ValueError as exc:
        raise ValueError(f"Valor inválido para {field_name}") from exc
    if not math.isfinite(numero):
        raise ValueError(f"Valor inválido para {field_name}")
    if inteiro and not numero.is_integer():
        raise ValueError(f"{field_name.capitalize()} deve ser um número inteiro")
    if numero < 0:
        raise ValueError(f"{field_name.capitalize()} não pode ser negativa")
    if maximo is not None and numero > maximo:
        raise ValueError(f"{field_name.capitalize()} não pode passar de {maximo:g}")
    return numero


def upsert_goals(
    ano: int,
    mes: int,
    metas: Mapping[RegiaoPlanejamento | str, Mapping[str, object]],
    user_id: int | None = None,
) -> int:
    if not 1 <= mes <= 12:
        raise ValueError(f"Mês inválido: {mes}")
    parsed: dict[RegiaoPlanejamento, tuple[int, int, float]] = {}
    for regiao_raw, valores in metas.items():
        regiao = parse_regiao(str(regiao_raw.value if isinstance(regiao_raw, RegiaoPlanejamento) else regiao_raw))
        if regiao is None:
            raise ValueError(f"Região desconhecida: {regiao_raw}")
        parsed[regiao] = (
            int(_parse_meta(valores.get("meta_equipamentos"), "a meta de equipamentos", inteiro=True)),
            int(_parse_meta(valores.get("meta_viaturas"), "a meta de viaturas", inteiro=True)),
            _parse_meta(valores.get("meta_cobertura"), "a meta de cobertura", maximo=100),
        )

    existing = {goal.regiao: goal for goal in list_goals(ano, mes)}
    for regiao, (meta_equipamentos, meta_viaturas, meta_cobertura) in parsed.items():
        goal = existing.get(regiao)
        if goal is None:
            goal = RegionalGoal(regiao=regiao, ano=ano, mes=mes, created_by_id=user_id)
            db.session.add(goal)
        goal.meta_equipamentos = meta_equipamentos
        goal.meta_viaturas = meta_viaturas
        goal.meta_cobertura = meta_cobertura
    _commit("salvar metas regionais")
    logger.info("Metas de %04d-%02d salvas para %s regiões", ano, mes, len(parsed))
    return len(parsed)


def reset_goals(ano: int, mes: int) -> int:
    removed = RegionalGoal.query.filter_by(ano=ano, mes=mes).delete()
    _commit("restaurar metas padrão")
    logger.info("Metas de %04d-%02d restauradas para o padrão (%s removidas)", ano, mes, removed)
    return removed


def available_goal_months() -> list[tuple[int, int]]:
    rows = (
        db.session.query(RegionalGoal.ano, RegionalGoal.mes)
        .distinct()
        .order_by(RegionalGoal.ano.desc(), RegionalGoal.mes.desc())
        .all()
    )
    return [(ano, mes) for ano, mes in rows]


# Page data


def dashboard_data(today: date | None = None) -> dict[str, object]:
    today = today or local_today()
    records = load_records()
    evolucao = analytics.evolution_series(
        today.year, today.month, 6, records.equipamentos, records.viaturas, records.solicitacoes
    )
    return {
        "stats": analytics.dashboard_stats(records.equipamentos, records.viaturas, records.solicitacoes),
        "evolucao": [asdict(point) for point in evolucao],
        "recentes": records.solicitacoes[:5],
    }


def regional_data(regiao_raw: str | None = None) -> dict[str, object]:
    records = load_records()
    overview = analytics.regional_overview(records.equipamentos, records.viaturas, records.solicitacoes)
    regiao = parse_regiao(regiao_raw)
    selecionada = next((row for row in overview if row.regiao == regiao), None)
    detalhe = []
    if regiao is not None:
        com_equipamento = analytics.municipios_com_equipamento(records.equipamentos)
        detalhe = [
            {"municipio": municipio, "possui_equipamento": municipio in com_equipamento}
            for municipio in MUNICIPIOS_POR_REGIAO[regiao]
        ]
    return {
        "overview": overview,
        "totais": analytics.regional_totals(overview),
        "radar": analytics.radar_data(overview),
        "selecionada": selecionada,
        "municipios": detalhe,
    }


def comparison_data(atual: analytics.Period, anterior: analytics.Period) -> dict[str, object]:
    records = load_records()
    stats_atual = analytics.period_stats(
        atual.ano, atual.mes, records.equipamentos, records.viaturas, records.solicitacoes
    )
    stats_anterior = analytics.period_stats(
        anterior.ano, anterior.mes, records.equipamentos, records.viaturas, records.solicitacoes
    )
    return {
        "atual": stats_atual,
        "anterior": stats_anterior,
        "metricas": analytics.compare_periods(stats_atual, stats_anterior),
        "regioes": analytics.region_comparison(stats_atual, stats_anterior),
    }


def goals_data(ano: int, mes: int, today: date | None = None) -> dict[str, object]:
    records = load_records()
    stored = list_goals(ano, mes)
    rows = analytics.regional_goal_progress(ano, mes, records.equipamentos, records.viaturas, stored, today)
    return {
        "metas": analytics.goals_with_defaults(ano, mes, stored),
        "progresso": rows,
        "resumo": analytics.goal_summary(rows),
        "meses_salvos": available_goal_months(),
    }


def map_data() -> dict[str, object]:
    records = load_records()
    data = analytics.map_categories(records.equipamentos, records.viaturas)
    return {
        "categorias": data.categorias,
        "legenda": {analytics.MAP_CATEGORY_LABELS[cat]: count for cat, count in data.legenda.items()},
        "rotulos": analytics.MAP_CATEGORY_LABELS,
    }
