from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any, Sequence
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from redemulher.core.municipios import get_regiao
from redemulher.core.utils import format_date, format_datetime, local_now, month_key
from redemulher.rede.analytics import (
    ComparisonMetric,
    PeriodStats,
    RegionComparison,
    RegionProgress,
)

logger = logging.getLogger(__name__)

HEADER_COLOR = "#1F518C"
ZEBRA_COLOR = "#F2F5FA"

PDF_MIMETYPE = "application/pdf"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

EXPORT_CATEGORIES = ("equipamentos", "viaturas", "solicitacoes", "completo")
EXPORT_FORMATS = ("pdf", "xlsx")


def format_pct(value: float | None) -> str:
    return f"{(value or 0):.1f}%"


def format_count(value: float | None) -> str:
    return str(int(round(value or 0)))


def format_signed(value: float, percent: bool = False) -> str:
    """Signed delta; only strictly positive values get an explicit "+"."""
    body = f"{value:.1f}%" if percent else format_count(value)
    return f"+{body}" if value > 0 else body


def _sim_nao(value: Any) -> str:
    return "Sim" if value else "Não"


def _label(value: Any) -> str:
    return getattr(value, "value", value) or ""


@dataclass
class ReportTable:
    title: str
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)


def equipamentos_table(equipamentos: Sequence[Any]) -> ReportTable:
    return ReportTable(
        title="Equipamentos",
        headers=["Município", "Região", "Tipo", "Patrulha", "Endereço", "Telefone", "Responsável", "Cadastro"],
        rows=[
            [
                e.municipio,
                _label(get_regiao(e.municipio)),
                _label(e.tipo),
                _sim_nao(e.possui_patrulha),
                e.endereco or "-",
                e.telefone or "-",
                e.responsavel or "-",
                format_date(e.created_at),
            ]
            for e in equipamentos
        ],
    )


def viaturas_table(viaturas: Sequence[Any]) -> ReportTable:
    return ReportTable(
        title="Viaturas",
        headers=["Município", "Região", "Tipo de patrulha", "Órgão", "Qtd.", "Vinculada", "Implantação", "Responsável"],
        rows=[
            [
                v.municipio,
                _label(get_regiao(v.municipio)),
                v.tipo_patrulha,
                _label(v.orgao_responsavel),
                format_count(v.quantidade),
                _sim_nao(v.vinculada_equipamento),
                format_date(v.data_implantacao),
                v.responsavel or "-",
            ]
            for v in viaturas
        ],
    )


def solicitacoes_table(solicitacoes: Sequence[Any]) -> ReportTable:
    return ReportTable(
        title="Solicitações",
        headers=[
            "Município",
            "Região",
            "Data",
            "Tipo solicitado",
            "Status",
            "NUP",
            "Patrulha",
            "Guarda estruturada",
            "Kit Athena",
            "Capacitação",
        ],
        rows=[
            [
                s.municipio,
                _label(get_regiao(s.municipio)),
                format_date(s.data_solicitacao),
                _label(s.tipo_equipamento),
                _label(s.status),
                s.nup or "-",
                _sim_nao(s.recebeu_patrulha),
                _sim_nao(s.guarda_municipal_estruturada),
                _sim_nao(s.kit_athena_entregue),
                _sim_nao(s.capacitacao_realizada),
            ]
            for s in solicitacoes
        ],
    )


def comparison_summary_table(metricas: Sequence[ComparisonMetric], atual: str, anterior: str) -> ReportTable:
    rows = []
    for metrica in metricas:
        if metrica.key == "cobertura":
            valores = [format_pct(metrica.atual), format_pct(metrica.anterior)]
        else:
            valores = [format_count(metrica.atual), format_count(metrica.anterior)]
        rows.append([metrica.label, *valores, format_signed(metrica.variacao, percent=metrica.percentual)])
    return ReportTable(title="Resumo comparativo", headers=["Indicador", atual, anterior, "Variação"], rows=rows)


def regional_breakdown_table(current: PeriodStats, previous: PeriodStats) -> ReportTable:
    rows = []
    for regiao, atual in current.por_regiao.items():
        anterior = previous.por_regiao[regiao]
        rows.append(
            [
                regiao.value,
                format_count(atual.equipamentos),
                format_signed(atual.novos_equipamentos),
                format_count(atual.viaturas),
                format_signed(atual.novas_viaturas),
                format_count(atual.novas_solicitacoes),
                format_pct(atual.cobertura),
                format_signed(atual.cobertura - anterior.cobertura, percent=True),
            ]
        )
    return ReportTable(
        title=f"Detalhamento regional - {current.period.label}",
        headers=["Região", "Equipamentos", "Novos", "Viaturas", "Novas", "Solicitações", "Cobertura", "Var. cobertura"],
        rows=rows,
    )


def region_comparison_table(regioes: Sequence[RegionComparison], atual: str, anterior: str) -> ReportTable:
    return ReportTable(
        title="Novos equipamentos por região",
        headers=["Região", atual, anterior, "Diferença"],
        rows=[
            [row.regiao.value, format_count(row.atual), format_count(row.anterior), format_signed(row.diferenca)]
            for row in regioes
        ],
    )


def goals_table(progresso: Sequence[RegionProgress]) -> ReportTable:
    return ReportTable(
        title="Metas regionais",
        headers=[
            "Região",
            "Meta equip.",
            "Novos equip.",
            "Progresso equip.",
            "Meta viaturas",
            "Novas viaturas",
            "Progresso viaturas",
            "Meta cobertura",
            "Cobertura",
            "Progresso cobertura",
            "Geral",
            "Situação",
        ],
        rows=[
            [
                row.regiao.value,
                format_count(row.goal.equipamentos),
                format_count(row.actual.equipamentos),
                format_pct(row.progresso_equipamentos),
                format_count(row.goal.viaturas),
                format_count(row.actual.viaturas),
                format_pct(row.progresso_viaturas),
                format_pct(row.goal.cobertura),
                format_pct(row.actual.cobertura),
                format_pct(row.progresso_cobertura),
                format_pct(row.geral),
                row.status.label,
            ]
            for row in progresso
        ],
    )


def render_pdf(title: str, tables: Sequence[ReportTable], generated_at: datetime | None = None) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=1.5 * cm,
        rightMargin=1.5 * cm,
        topMargin=1.5 * cm,
        bottomMargin=1.5 * cm,
        title=title,
    )
    styles = getSampleStyleSheet()
    style_title = ParagraphStyle("rede_title", parent=styles["Heading1"], fontSize=16, leading=20, spaceAfter=4)
    style_section = ParagraphStyle("rede_section", parent=styles["Heading2"], fontSize=12, leading=15, spaceBefore=10)
    style_meta = ParagraphStyle("rede_meta", parent=styles["Normal"], fontSize=8, textColor=colors.grey)
    style_cell = ParagraphStyle("rede_cell", parent=styles["Normal"], fontSize=7, leading=9)

    story: list[Any] = [
        Paragraph(escape(title), style_title),
        Paragraph(f"Gerado em {format_datetime(generated_at or local_now())}", style_meta),
        Spacer(1, 0.4 * cm),
    ]
    for table in tables:
        story.append(Paragraph(escape(table.title), style_section))
        if not table.rows:
            story.append(Paragraph("Nenhum registro encontrado.", style_cell))
            continue
        data = [table.headers] + [[Paragraph(escape(str(cell)), style_cell) for cell in row] for row in table.rows]
        grid = Table(data, repeatRows=1)
        grid.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), HexColor(HEADER_COLOR)),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 7),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, HexColor(ZEBRA_COLOR)]),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ]
            )
        )
        story.append(grid)
    doc.build(story)
    return buffer.getvalue()


_SHEET_INVALID = re.compile(r"[\\/*?:\[\]]")


def _sheet_name(title: str) -> str:
    return _SHEET_INVALID.sub("-", title)[:31] or "Dados"


def render_xlsx(tables: Sequence[ReportTable]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor=HEADER_COLOR.lstrip("#"))
    for table in tables:
        sheet = workbook.create_sheet(_sheet_name(table.title))
        sheet.append(table.headers)
        for cell in sheet[1]:
            cell.font = header_font
            cell.fill = header_fill
        for row in table.rows:
            sheet.append(row)
        for index, header in enumerate(table.headers, start=1):
            width = max([len(str(header))] + [len(str(row[index - 1])) for row in table.rows])
            sheet.column_dimensions[sheet.cell(row=1, column=index).column_letter].width = min(width + 2, 60)
    if not workbook.sheetnames:
        workbook.create_sheet("Dados")
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@dataclass
class ExportFile:
    content: bytes
    filename: str
    mimetype: str


def export_records(categoria: str, formato: str, equipamentos, viaturas, solicitacoes) -> ExportFile:
    if categoria not in EXPORT_CATEGORIES:
        raise ValueError(f"Categoria de exportação desconhecida: {categoria}")
    if formato not in EXPORT_FORMATS:
        raise ValueError(f"Formato de exportação desconhecido: {formato}")

    builders = {
        "equipamentos": lambda: [equipamentos_table(equipamentos)],
        "viaturas": lambda: [viaturas_table(viaturas)],
        "solicitacoes": lambda: [solicitacoes_table(solicitacoes)],
        "completo": lambda: [
            equipamentos_table(equipamentos),
            viaturas_table(viaturas),
            solicitacoes_table(solicitacoes),
        ],
    }
    tables = builders[categoria]()
    stem = "relatorio-completo" if categoria == "completo" else categoria
    if formato == "pdf":
        title = "Relatório completo da rede" if categoria == "completo" else f"Relatório de {tables[0].title.lower()}"
        content = render_pdf(title, tables)
        mimetype = PDF_MIMETYPE
    else:
        content = render_xlsx(tables)
        mimetype = XLSX_MIMETYPE
    logger.info("Exportação %s.%s gerada (%s linhas)", stem, formato, sum(len(t.rows) for t in tables))
    return ExportFile(content=content, filename=f"{stem}.{formato}", mimetype=mimetype)


def comparison_pdf(data: dict[str, Any]) -> ExportFile:
    atual: PeriodStats = data["atual"]
    anterior: PeriodStats = data["anterior"]
    tables = [
        comparison_summary_table(data["metricas"], atual.period.label, anterior.period.label),
        region_comparison_table(data["regioes"], atual.period.label, anterior.period.label),
        regional_breakdown_table(atual, anterior),
    ]
    content = render_pdf(f"Relatório comparativo: {atual.period.label} x {anterior.period.label}", tables)
    filename = f"relatorio-comparativo-{atual.period.key}-vs-{anterior.period.key}.pdf"
    logger.info("Relatório comparativo %s gerado", filename)
    return ExportFile(content=content, filename=filename, mimetype=PDF_MIMETYPE)


def goals_xlsx(ano: int, mes: int, progresso: Sequence[RegionProgress]) -> ExportFile:
    return ExportFile(
        content=render_xlsx([goals_table(progresso)]),
        filename=f"metas-regionais-{month_key(ano, mes)}.xlsx",
        mimetype=XLSX_MIMETYPE,
    )
