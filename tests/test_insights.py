from coaching_backend.reports.data import GoalItem, Metrics, PerformanceSummary, SubjectStat
from coaching_backend.reports.insights import (
    FALLBACK_RECOMMENDATION,
    GOALS_RECOMMENDATION,
    generate_insights,
)


def _metrics(completion=75, grading_rate=85, avg=70, subjects=None, total=4, submitted=3):
    return Metrics(
        performance=PerformanceSummary(
            total_assignments=total,
            submitted_assignments=submitted,
            assignment_completion=completion,
            grading_rate=grading_rate,
            average_grade=avg,
        ),
        subjects=subjects or [],
    )


def test_no_data_returns_only_fallback():
    insights = generate_insights(_metrics(0, 0, 0, total=0, submitted=0), [])
    assert insights.recommendations == [FALLBACK_RECOMMENDATION]
    assert insights.strengths == []
    assert insights.areas_for_improvement == []


def test_low_values_produce_recommendations_and_areas():
    insights = generate_insights(_metrics(completion=50, grading_rate=40, avg=45), [])

    assert insights.recommendations == [
        "Ödev teslim oranını artırmak için düzenli çalışma planı oluşturulmalıdır.",
        "Not ortalamasını yükseltmek için ek ders desteği alınması önerilir.",
        "Ödevlerin daha hızlı teslim edilmesi için zaman yönetimi becerileri geliştirilmelidir.",
    ]
    assert insights.areas_for_improvement == ["Ödev teslim oranı", "Not ortalaması", "Ödev teslim hızı"]
    assert insights.strengths == []


def test_high_values_produce_strengths_and_fallback():
    insights = generate_insights(_metrics(completion=95, grading_rate=100, avg=92), [])

    assert insights.strengths == ["Yüksek ödev teslim oranı", "Yüksek not ortalaması", "Hızlı ödev teslimi"]
    assert insights.recommendations == [FALLBACK_RECOMMENDATION]


def test_threshold_boundaries_are_exclusive():
    insights = generate_insights(_metrics(completion=70, grading_rate=80, avg=60), [])
    assert insights.areas_for_improvement == []
    insights = generate_insights(_metrics(completion=85, grading_rate=90, avg=80), [])
    assert insights.strengths == []


def test_subject_rules():
    subjects = [
        SubjectStat(subject="Fizik", completion=40, average_grade=45),
        SubjectStat(subject="Tarih", completion=90, average_grade=85),
    ]
    insights = generate_insights(_metrics(subjects=subjects), [])

    assert "Fizik dersinde daha fazla çalışma yapılması önerilir." in insights.recommendations
    assert "Fizik dersinde ek destek alınması faydalı olacaktır." in insights.recommendations
    assert "Fizik dersinde performans" in insights.areas_for_improvement
    assert "Tarih dersinde yüksek performans" in insights.strengths


def test_open_goals_add_goal_recommendation():
    goals = [GoalItem(id="g1", status="completed"), GoalItem(id="g2", status="pending")]
    insights = generate_insights(_metrics(), goals)
    assert insights.recommendations == [GOALS_RECOMMENDATION]


def test_only_goals_still_generates_insights():
    goals = [GoalItem(id="g1", status="completed")]
    insights = generate_insights(_metrics(0, 0, 0, total=0, submitted=0), goals)
    assert "Ödev teslim oranı" in insights.areas_for_improvement
