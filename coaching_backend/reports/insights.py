from typing import List

from .data import GoalItem, Insights, Metrics

# Thresholds are percentages; "low" checks use <, "high" checks use >.
COMPLETION_LOW = 70
COMPLETION_HIGH = 85
AVERAGE_GRADE_LOW = 60
AVERAGE_GRADE_HIGH = 80
GRADING_RATE_LOW = 80
GRADING_RATE_HIGH = 90
SUBJECT_COMPLETION_LOW = 60
SUBJECT_COMPLETION_HIGH = 80
SUBJECT_AVERAGE_LOW = 50

FALLBACK_RECOMMENDATION = "Mevcut performansı korumak için düzenli çalışmaya devam edilmelidir."
GOALS_RECOMMENDATION = "Belirlenen hedeflere ulaşmak için daha sistematik bir yaklaşım benimsenmelidir."


def generate_insights(metrics: Metrics, goals: List[GoalItem]) -> Insights:
    """
    Turn metrics into recommendation, strength and improvement-area strings.
    With no assignments, submissions or goals at all only the fallback recommendation is returned.
    """
    performance = metrics.performance
    if (
        performance.total_assignments == 0
        and performance.submitted_assignments == 0
        and not goals
    ):
        return Insights(recommendations=[FALLBACK_RECOMMENDATION])

    recommendations: List[str] = []
    strengths: List[str] = []
    areas: List[str] = []

    completion = performance.assignment_completion
    if completion < COMPLETION_LOW:
        recommendations.append("Ödev teslim oranını artırmak için düzenli çalışma planı oluşturulmalıdır.")
        areas.append("Ödev teslim oranı")
    elif completion > COMPLETION_HIGH:
        strengths.append("Yüksek ödev teslim oranı")

    avg_grade = performance.average_grade
    if avg_grade < AVERAGE_GRADE_LOW:
        recommendations.append("Not ortalamasını yükseltmek için ek ders desteği alınması önerilir.")
        areas.append("Not ortalaması")
    elif avg_grade > AVERAGE_GRADE_HIGH:
        strengths.append("Yüksek not ortalaması")

    grading_rate = performance.grading_rate
    if grading_rate < GRADING_RATE_LOW:
        recommendations.append(
            "Ödevlerin daha hızlı teslim edilmesi için zaman yönetimi becerileri geliştirilmelidir."
        )
        areas.append("Ödev teslim hızı")
    elif grading_rate > GRADING_RATE_HIGH:
        strengths.append("Hızlı ödev teslimi")

    for stat in metrics.subjects:
        if stat.completion < SUBJECT_COMPLETION_LOW:
            recommendations.append(f"{stat.subject} dersinde daha fazla çalışma yapılması önerilir.")
            areas.append(f"{stat.subject} dersinde performans")
        elif stat.completion > SUBJECT_COMPLETION_HIGH:
            strengths.append(f"{stat.subject} dersinde yüksek performans")
        if stat.average_grade < SUBJECT_AVERAGE_LOW:
            recommendations.append(f"{stat.subject} dersinde ek destek alınması faydalı olacaktır.")

    if any(goal.status != "completed" for goal in goals):
        recommendations.append(GOALS_RECOMMENDATION)

    if not recommendations:
        recommendations.append(FALLBACK_RECOMMENDATION)

    return Insights(
        recommendations=recommendations,
        strengths=strengths,
        areas_for_improvement=areas,
    )
