"""PDF renderers for student performance reports.

Two strategies share one interface: an HTML template printed by WeasyPrint and
a direct reportlab canvas layout. The strategy is picked once at startup.
"""
import base64
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import matplotlib

matplotlib.use("Agg")
from matplotlib.figure import Figure
from jinja2 import Environment, FileSystemLoader, select_autoescape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from ..config import Settings
from .data import MonthlyBucket, ReportData

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
BUNDLED_FONT_DIR = Path(matplotlib.get_data_path()) / "fonts" / "ttf"
REPORT_TITLE = "ÖĞRENCİ PERFORMANS RAPORU"
SECTION_ORDER = (
    "header",
    "info",
    "performance",
    "subjects",
    "monthly",
    "goals",
    "assignments",
    "insights",
    "footer",
)
SECTION_TITLES = {
    "info": "Öğrenci ve Öğretmen Bilgileri",
    "performance": "Performans Özeti",
    "subjects": "Ders Bazında Performans",
    "monthly": "Aylık İlerleme",
    "goals": "Hedefler",
    "assignments": "Ödevler",
    "insights": "Değerlendirme ve Öneriler",
}
STATUS_LABELS = {
    "pending": "Bekliyor",
    "not_started": "Başlanmadı",
    "submitted": "Teslim Edildi",
    "graded": "Notlandırıldı",
    "late": "Geç Teslim",
    "completed": "Tamamlandı",
    "incomplete": "Eksik",
    "in_progress": "Devam Ediyor",
    "cancelled": "İptal Edildi",
}
PRIMARY_COLOR = "#1e3a8a"


def status_label(value: Optional[str]) -> str:
    if not value:
        return "-"
    return STATUS_LABELS.get(value, value)


def format_date(value: Optional[datetime], tz: ZoneInfo, with_time: bool = False) -> str:
    if value is None:
        return "-"
    local = value.astimezone(tz)
    return local.strftime("%d.%m.%Y %H:%M" if with_time else "%d.%m.%Y")


def format_grade(grade: Optional[float], max_grade: int = 100) -> str:
    if grade is None:
        return "-"
    value = int(grade) if float(grade).is_integer() else round(grade, 1)
    return f"{value}/{max_grade}"


def report_filename(report: ReportData, tz: ZoneInfo, extension: str = "pdf") -> str:
    date_part = report.generated_at.astimezone(tz).strftime("%Y-%m-%d")
    first = report.student.first_name.replace(" ", "_")
    last = report.student.last_name.replace(" ", "_")
    return f"rapor_{first}_{last}_{date_part}.{extension}"


def create_monthly_chart(monthly: List[MonthlyBucket]) -> Optional[io.BytesIO]:
    if not monthly:
        return None
    ordered = list(reversed(monthly))
    labels = [bucket.label for bucket in ordered]
    # Figure instead of pyplot: charts are drawn from worker threads.
    fig = Figure(figsize=(6.4, 2.8))
    ax = fig.subplots()
    ax.bar(labels, [bucket.assignments for bucket in ordered], color="#93c5fd", label="Ödev")
    ax.set_ylabel("Ödev sayısı")
    ax.tick_params(axis="x", labelsize=8, rotation=20)
    ax.tick_params(axis="y", labelsize=8)
    grade_ax = ax.twinx()
    grade_ax.plot(labels, [bucket.average_grade for bucket in ordered], color=PRIMARY_COLOR, marker="o", label="Not ort.")
    grade_ax.set_ylim(0, 100)
    grade_ax.set_ylabel("Not ortalaması")
    grade_ax.tick_params(axis="y", labelsize=8)
    fig.tight_layout()
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=150)
    buffer.seek(0)
    return buffer


def build_sections(report: ReportData, tz: ZoneInfo) -> Dict[str, Any]:
    """Flatten ReportData into printable rows keyed by section name."""
    perf = report.performance
    return {
        "header": {
            "title": REPORT_TITLE,
            "period": f"{format_date(report.period.start, tz)} - {format_date(report.period.end, tz)}",
        },
        "info": [
            ("Öğrenci", report.student.full_name),
            ("E-posta", report.student.email or "-"),
            ("Sınıf", report.class_info.name if report.class_info else "-"),
            ("Öğretmen", report.teacher.full_name),
        ],
        "performance": [
            ("Ödev Tamamlama", f"%{perf.assignment_completion}"),
            ("Notlandırma Oranı", f"%{perf.grading_rate}"),
            ("Not Ortalaması", str(perf.average_grade)),
            ("Hedef İlerlemesi", f"%{perf.goals_progress}"),
            ("Genel Performans", f"%{perf.overall_performance}"),
            ("Toplam / Teslim / Notlanan", f"{perf.total_assignments} / {perf.submitted_assignments} / {perf.graded_assignments}"),
        ],
        "subjects": {
            "headers": ["Ders", "Ödev", "Teslim", "Tamamlama", "Not Ort."],
            "rows": [
                [s.subject, str(s.total_assignments), str(s.submitted_assignments), f"%{s.completion}", str(s.average_grade)]
                for s in report.subjects
            ],
        },
        "monthly": {
            "headers": ["Ay", "Ödev", "Teslim", "Tamamlanan Hedef", "Not Ort."],
            "rows": [
                [m.label, str(m.assignments), str(m.submissions), str(m.goals_completed), str(m.average_grade)]
                for m in report.monthly
            ],
        },
        "goals": {
            "headers": ["Hedef", "Durum", "İlerleme", "Hedef Tarihi"],
            "rows": [
                [g.title, status_label(g.status), f"%{g.progress}", format_date(g.target_date, tz)]
                for g in report.goals
            ],
        },
        "assignments": {
            "headers": ["Ödev", "Ders", "Teslim Tarihi", "Durum", "Not"],
            "rows": [
                [a.title, a.subject, format_date(a.due_date, tz), status_label(a.status), format_grade(a.grade, a.max_grade)]
                for a in report.assignments
            ],
        },
        "insights": [
            ("Güçlü Yönler", report.insights.strengths),
            ("Gelişim Alanları", report.insights.areas_for_improvement),
            ("Öneriler", report.insights.recommendations),
        ],
        "footer": f"Oluşturulma tarihi: {format_date(report.generated_at, tz, with_time=True)}",
    }


class ReportRenderer:
    name = "base"

    def __init__(self, tz: ZoneInfo):
        self.tz = tz

    def render(self, report: ReportData) -> bytes:
        raise NotImplementedError


class HtmlReportRenderer(ReportRenderer):
    """Jinja2 template printed to PDF with WeasyPrint."""

    name = "html"

    def __init__(self, tz: ZoneInfo):
        super().__init__(tz)
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def render_html(self, report: ReportData) -> str:
        chart = create_monthly_chart(report.monthly)
        chart_base64 = base64.b64encode(chart.getvalue()).decode() if chart else None
        template = self.env.get_template("report.html")
        return template.render(
            sections=build_sections(report, self.tz),
            section_order=SECTION_ORDER,
            section_titles=SECTION_TITLES,
            chart_base64=chart_base64,
        )

    def render(self, report: ReportData) -> bytes:
        from weasyprint import HTML

        html_string = self.render_html(report)
        return HTML(string=html_string, base_url=str(TEMPLATE_DIR)).write_pdf()


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps "Sayfa i / N" on every page once the page count is known."""

    def __init__(self, *args, footer_text: str = "", font_name: str = "Helvetica", **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: List[Dict[str, Any]] = []
        self._footer_text = footer_text
        self._footer_font = font_name

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        width = self._pagesize[0]
        self.saveState()
        self.setFont(self._footer_font, 8)
        self.setFillColor(colors.HexColor("#64748b"))
        self.drawString(40, 24, self._footer_text)
        self.drawRightString(width - 40, 24, f"Sayfa {self._pageNumber} / {total}")
        self.restoreState()


class CanvasLayout:
    """Per-render drawing state: the canvas plus a manual Y cursor."""

    MARGIN = 40
    TOP_OFFSET = 50
    BOTTOM_LIMIT = 60
    LINE_HEIGHT = 14
    ROW_HEIGHT = 16

    def __init__(self, pdf: canvas.Canvas, font: str, bold_font: str):
        self.pdf = pdf
        self.font = font
        self.bold_font = bold_font
        self.width, self.height = A4
        self.y = self.height - self.TOP_OFFSET

    def new_page(self):
        self.pdf.showPage()
        self.y = self.height - self.TOP_OFFSET

    def ensure_space(self, height: float):
        if self.y - height < self.BOTTOM_LIMIT:
            self.new_page()

    def text(self, text: str, size: int = 10, bold: bool = False, indent: float = 0):
        font = self.bold_font if bold else self.font
        usable = self.width - 2 * self.MARGIN - indent
        for line in simpleSplit(text, font, size, usable) or [""]:
            self.ensure_space(self.LINE_HEIGHT)
            self.pdf.setFont(font, size)
            self.pdf.drawString(self.MARGIN + indent, self.y, line)
            self.y -= self.LINE_HEIGHT

    def section_title(self, name: str):
        self.ensure_space(self.LINE_HEIGHT * 3)
        self.y -= 6
        self.pdf.setFillColor(colors.HexColor(PRIMARY_COLOR))
        self.text(SECTION_TITLES[name], size=13, bold=True)
        self.pdf.setFillColor(colors.black)
        self.y -= 2

    def table(self, headers: Sequence[str], rows: List[List[str]], widths: Sequence[float]):
        if not rows:
            self.text("Kayıt bulunmadı.", size=9, indent=4)
            return
        self.ensure_space(self.ROW_HEIGHT * 2)
        self.table_row(headers, widths, header=True)
        for index, row in enumerate(rows):
            if self.y - self.ROW_HEIGHT < self.BOTTOM_LIMIT:
                self.new_page()
                self.table_row(headers, widths, header=True)
            self.table_row(row, widths, shaded=index % 2 == 1)

    def table_row(self, cells: Sequence[str], widths: Sequence[float], header: bool = False, shaded: bool = False):
        pdf = self.pdf
        top = self.y + 4
        if header or shaded:
            pdf.setFillColor(colors.HexColor(PRIMARY_COLOR if header else "#f1f5f9"))
            pdf.rect(self.MARGIN, top - self.ROW_HEIGHT, sum(widths), self.ROW_HEIGHT, stroke=0, fill=1)
        pdf.setFillColor(colors.white if header else colors.black)
        font = self.bold_font if header else self.font
        pdf.setFont(font, 8)
        x = self.MARGIN
        for cell, width in zip(cells, widths):
            pdf.drawString(x + 3, self.y - 7, fit_text(str(cell), font, 8, width - 6))
            x += width
        pdf.setFillColor(colors.black)
        self.y -= self.ROW_HEIGHT


def fit_text(text: str, font: str, size: int, width: float) -> str:
    if pdfmetrics.stringWidth(text, font, size) <= width:
        return text
    while text and pdfmetrics.stringWidth(text + "…", font, size) > width:
        text = text[:-1]
    return text + "…"


class CanvasReportRenderer(ReportRenderer):
    """Direct reportlab drawing with explicit page breaks."""

    name = "canvas"

    def __init__(self, tz: ZoneInfo, font_path: Optional[str] = None):
        super().__init__(tz)
        self.font = "Helvetica"
        self.bold_font = "Helvetica-Bold"
        if font_path:
            self._register_font(font_path)
        else:
            self._register_bundled_fonts()

    def _register_bundled_fonts(self):
        # Helvetica has no glyphs for ş, ğ, ı and İ; matplotlib ships DejaVu Sans.
        try:
            pdfmetrics.registerFont(TTFont("ReportSans", str(BUNDLED_FONT_DIR / "DejaVuSans.ttf")))
            pdfmetrics.registerFont(TTFont("ReportSans-Bold", str(BUNDLED_FONT_DIR / "DejaVuSans-Bold.ttf")))
        except Exception as exc:
            logger.warning("Bundled DejaVu fonts unavailable, Turkish characters may not render: %s", exc)
            return
        self.font = "ReportSans"
        self.bold_font = "ReportSans-Bold"

    def _register_font(self, font_path: str):
        try:
            pdfmetrics.registerFont(TTFont("ReportFont", font_path))
        except Exception as exc:
            logger.warning("Report font %s could not be registered, using DejaVu Sans: %s", font_path, exc)
            self._register_bundled_fonts()
            return
        self.font = "ReportFont"
        self.bold_font = "ReportFont"

    def render(self, report: ReportData) -> bytes:
        sections = build_sections(report, self.tz)
        buffer = io.BytesIO()
        pdf = NumberedCanvas(buffer, pagesize=A4, footer_text=sections["footer"], font_name=self.font)
        pdf.setTitle(REPORT_TITLE)
        layout = CanvasLayout(pdf, self.font, self.bold_font)
        for name in SECTION_ORDER:
            getattr(self, f"_draw_{name}")(layout, report, sections)
        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _draw_header(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        pdf = layout.pdf
        pdf.setFillColor(colors.HexColor(PRIMARY_COLOR))
        pdf.setFont(self.bold_font, 18)
        pdf.drawCentredString(layout.width / 2, layout.y, sections["header"]["title"])
        layout.y -= 20
        pdf.setFillColor(colors.black)
        pdf.setFont(self.font, 10)
        pdf.drawCentredString(layout.width / 2, layout.y, f"Dönem: {sections['header']['period']}")
        layout.y -= 10
        pdf.setStrokeColor(colors.HexColor(PRIMARY_COLOR))
        pdf.line(layout.MARGIN, layout.y, layout.width - layout.MARGIN, layout.y)
        layout.y -= 16

    def _draw_info(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("info")
        for label, value in sections["info"]:
            layout.text(f"{label}: {value}")

    def _draw_performance(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("performance")
        for label, value in sections["performance"]:
            layout.text(f"{label}: {value}")

    def _draw_subjects(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("subjects")
        table = sections["subjects"]
        layout.table(table["headers"], table["rows"], [175, 70, 70, 100, 100])

    def _draw_monthly(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("monthly")
        chart = create_monthly_chart(report.monthly)
        if chart is not None:
            chart_width = layout.width - 2 * layout.MARGIN
            chart_height = chart_width * 2.8 / 6.4
            layout.ensure_space(chart_height + 8)
            layout.pdf.drawImage(
                ImageReader(chart), layout.MARGIN, layout.y - chart_height, width=chart_width, height=chart_height
            )
            layout.y -= chart_height + 12
        table = sections["monthly"]
        layout.table(table["headers"], table["rows"], [135, 80, 80, 120, 100])

    def _draw_goals(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("goals")
        table = sections["goals"]
        layout.table(table["headers"], table["rows"], [235, 100, 80, 100])

    def _draw_assignments(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("assignments")
        table = sections["assignments"]
        layout.table(table["headers"], table["rows"], [175, 85, 85, 90, 80])

    def _draw_insights(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.section_title("insights")
        for label, items in sections["insights"]:
            if not items:
                continue
            layout.text(label, size=11, bold=True)
            for item in items:
                layout.text(f"• {item}", indent=10)
            layout.y -= 4

    def _draw_footer(self, layout: CanvasLayout, report: ReportData, sections: Dict[str, Any]):
        layout.ensure_space(layout.LINE_HEIGHT * 2)
        layout.y -= 10
        layout.text("Bu rapor otomatik olarak oluşturulmuştur.", size=8)


def weasyprint_available() -> bool:
    try:
        import weasyprint  # noqa: F401
    except (ImportError, OSError) as exc:
        logger.warning("WeasyPrint is not usable, HTML report rendering disabled: %s", exc)
        return False
    return True


def select_renderer(settings: Settings) -> ReportRenderer:
    """Pick the report renderer once at startup by probing what the host can run."""
    choice = settings.report_renderer
    if choice == "canvas":
        return CanvasReportRenderer(settings.tz, settings.report_font_path)
    if choice == "html":
        return HtmlReportRenderer(settings.tz)
    if weasyprint_available():
        return HtmlReportRenderer(settings.tz)
    return CanvasReportRenderer(settings.tz, settings.report_font_path)
