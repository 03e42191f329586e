from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..utils import clamp_percent, normalize_score
from .data import (
    DEFAULT_SUBJECT,
    AssignmentItem,
    AssignmentRow,
    GoalItem,
    Metrics,
    MonthlyBucket,
    PerformanceSummary,
    SubjectStat,
    SubmissionItem,
)

COMPLETION_WEIGHT = 0.4
GRADING_RATE_WEIGHT = 0.3
AVERAGE_GRADE_WEIGHT = 0.3

TURKISH_MONTHS = [
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
]


def ratio_percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return clamp_percent(part / whole * 100)


def average_grade(grades: Iterable[Optional[float]]) -> int:
    values = [g for g in (normalize_score(grade) for grade in grades) if g is not None]
    if not values:
        return 0
    return clamp_percent(sum(values) / len(values))


def overall_performance(completion: int, grading_rate: int, avg_grade: int) -> int:
    return clamp_percent(
        completion * COMPLETION_WEIGHT
        + grading_rate * GRADING_RATE_WEIGHT
        + avg_grade * AVERAGE_GRADE_WEIGHT
    )


def _is_graded(submission: SubmissionItem) -> bool:
    return normalize_score(submission.grade) is not None


def compute_performance(
    assignments: List[AssignmentItem],
    submissions: List[SubmissionItem],
    goals: List[GoalItem],
) -> PerformanceSummary:
    total = len(assignments)
    submitted = len(submissions)
    graded = sum(1 for s in submissions if _is_graded(s))
    completion = ratio_percent(submitted, total)
    grading_rate = ratio_percent(graded, submitted)
    avg = average_grade(s.grade for s in submissions)
    completed_goals = sum(1 for g in goals if g.status == "completed")
    return PerformanceSummary(
        total_assignments=total,
        submitted_assignments=submitted,
        graded_assignments=graded,
        assignment_completion=completion,
        grading_rate=grading_rate,
        average_grade=avg,
        total_goals=len(goals),
        completed_goals=completed_goals,
        goals_progress=ratio_percent(completed_goals, len(goals)),
        overall_performance=overall_performance(completion, grading_rate, avg),
    )


def compute_subject_stats(
    assignments: List[AssignmentItem],
    submissions: List[SubmissionItem],
) -> List[SubjectStat]:
    counters: Dict[str, Dict[str, list]] = {}
    subject_by_assignment: Dict[str, str] = {}
    for assignment in assignments:
        subject = assignment.subject or DEFAULT_SUBJECT
        subject_by_assignment[assignment.id] = subject
        bucket = counters.setdefault(subject, {"total": [], "submitted": [], "grades": []})
        bucket["total"].append(assignment.id)
    for submission in submissions:
        subject = subject_by_assignment.get(submission.assignment_id)
        if subject is None:
            continue
        bucket = counters[subject]
        bucket["submitted"].append(submission.id)
        if _is_graded(submission):
            bucket["grades"].append(submission.grade)
    stats = []
    for subject, bucket in counters.items():
        stats.append(
            SubjectStat(
                subject=subject,
                total_assignments=len(bucket["total"]),
                submitted_assignments=len(bucket["submitted"]),
                graded_assignments=len(bucket["grades"]),
                completion=ratio_percent(len(bucket["submitted"]), len(bucket["total"])),
                average_grade=average_grade(bucket["grades"]),
            )
        )
    return stats


def month_key(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m")


def format_month(key: str) -> str:
    year, month = key.split("-")
    return f"{TURKISH_MONTHS[int(month) - 1]} {year}"


def compute_monthly(
    assignments: List[AssignmentItem],
    submissions: List[SubmissionItem],
    goals: List[GoalItem],
) -> List[MonthlyBucket]:
    """One bucket per month with a due date or a submission, newest month first."""
    buckets: Dict[str, Dict[str, list]] = {}

    def bucket_for(key: str) -> Dict[str, list]:
        return buckets.setdefault(key, {"assignments": [], "submissions": [], "grades": [], "goals": []})

    for assignment in assignments:
        key = month_key(assignment.due_date)
        if key:
            bucket_for(key)["assignments"].append(assignment.id)
    for submission in submissions:
        key = month_key(submission.submitted_at)
        if key:
            bucket = bucket_for(key)
            bucket["submissions"].append(submission.id)
            if _is_graded(submission):
                bucket["grades"].append(submission.grade)
    for goal in goals:
        if goal.status != "completed":
            continue
        key = month_key(goal.completed_at or goal.target_date)
        if key in buckets:
            buckets[key]["goals"].append(goal.id)

    return [
        MonthlyBucket(
            month=key,
            label=format_month(key),
            assignments=len(buckets[key]["assignments"]),
            submissions=len(buckets[key]["submissions"]),
            goals_completed=len(buckets[key]["goals"]),
            average_grade=average_grade(buckets[key]["grades"]),
        )
        for key in sorted(buckets, reverse=True)
    ]


def build_assignment_rows(
    assignments: List[AssignmentItem],
    submissions: List[SubmissionItem],
) -> List[AssignmentRow]:
    by_assignment = {s.assignment_id: s for s in submissions}
    rows = []
    for assignment in assignments:
        submission = by_assignment.get(assignment.id)
        rows.append(
            AssignmentRow(
                id=assignment.id,
                title=assignment.title,
                subject=assignment.subject,
                due_date=assignment.due_date,
                status=submission.status if submission else "pending",
                grade=submission.grade if submission else None,
                max_grade=assignment.max_grade,
                submitted_at=submission.submitted_at if submission else None,
            )
        )
    return rows


def compute_metrics(
    assignments: List[AssignmentItem],
    submissions: List[SubmissionItem],
    goals: List[GoalItem],
) -> Metrics:
    return Metrics(
        performance=compute_performance(assignments, submissions, goals),
        subjects=compute_subject_stats(assignments, submissions),
        monthly=compute_monthly(assignments, submissions, goals),
    )

