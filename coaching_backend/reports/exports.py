import io
from zoneinfo import ZoneInfo

import pandas as pd

from .data import ReportData
from .renderers import format_date, status_label

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def generate_report_excel(report: ReportData, tz: ZoneInfo) -> bytes:
    buffer = io.BytesIO()
    perf = report.performance
    summary_df = pd.DataFrame([
        {
            "Öğrenci": report.student.full_name,
            "Sınıf": report.class_info.name if report.class_info else "-",
            "Öğretmen": report.teacher.full_name,
            "Dönem Başlangıcı": format_date(report.period.start, tz),
            "Dönem Sonu": format_date(report.period.end, tz),
            "Ödev Tamamlama %": perf.assignment_completion,
            "Notlandırma Oranı %": perf.grading_rate,
            "Not Ortalaması": perf.average_grade,
            "Hedef İlerlemesi %": perf.goals_progress,
            "Genel Performans %": perf.overall_performance,
        }
    ])
    subjects_df = pd.DataFrame(
        [
            {
                "Ders": stat.subject,
                "Ödev": stat.total_assignments,
                "Teslim": stat.submitted_assignments,
                "Notlanan": stat.graded_assignments,
                "Tamamlama %": stat.completion,
                "Not Ort.": stat.average_grade,
            }
            for stat in report.subjects
        ],
        columns=["Ders", "Ödev", "Teslim", "Notlanan", "Tamamlama %", "Not Ort."],
    )
    monthly_df = pd.DataFrame(
        [
            {
                "Ay": bucket.label,
                "Ödev": bucket.assignments,
                "Teslim": bucket.submissions,
                "Tamamlanan Hedef": bucket.goals_completed,
                "Not Ort.": bucket.average_grade,
            }
            for bucket in report.monthly
        ],
        columns=["Ay", "Ödev", "Teslim", "Tamamlanan Hedef", "Not Ort."],
    )
    goals_df = pd.DataFrame(
        [
            {
                "Hedef": goal.title,
                "Durum": status_label(goal.status),
                "İlerleme %": goal.progress,
                "Hedef Tarihi": format_date(goal.target_date, tz),
            }
            for goal in report.goals
        ],
        columns=["Hedef", "Durum", "İlerleme %", "Hedef Tarihi"],
    )
    assignments_df = pd.DataFrame(
        [
            {
                "Ödev": row.title,
                "Ders": row.subject,
                "Teslim Tarihi": format_date(row.due_date, tz),
                "Durum": status_label(row.status),
                "Not": row.grade,
            }
            for row in report.assignments
        ],
        columns=["Ödev", "Ders", "Teslim Tarihi", "Durum", "Not"],
    )
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        summary_df.to_excel(writer, sheet_name="Özet", index=False)
        subjects_df.to_excel(writer, sheet_name="Dersler", index=False)
        monthly_df.to_excel(writer, sheet_name="Aylık", index=False)
        goals_df.to_excel(writer, sheet_name="Hedefler", index=False)
        assignments_df.to_excel(writer, sheet_name="Ödevler", index=False)
    buffer.seek(0)
    return buffer.getvalue()
