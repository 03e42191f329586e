from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_SUBJECT = "Genel"
DEFAULT_ASSIGNMENT_TITLE = "Başlıksız Ödev"
DEFAULT_GOAL_TITLE = "Başlıksız Hedef"
DEFAULT_CLASS_NAME = "Bilinmeyen Sınıf"


class StudentInfo(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str = ""
    phone: Optional[str] = None
    class_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class TeacherInfo(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ClassInfo(BaseModel):
    id: str
    name: str = DEFAULT_CLASS_NAME
    description: Optional[str] = None


class AssignmentItem(BaseModel):
    id: str
    title: str = DEFAULT_ASSIGNMENT_TITLE
    subject: str = DEFAULT_SUBJECT
    due_date: Optional[datetime] = None
    max_grade: int = 100


class SubmissionItem(BaseModel):
    id: str
    assignment_id: str
    status: str = "submitted"
    grade: Optional[float] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None


class GoalItem(BaseModel):
    id: str
    title: str = DEFAULT_GOAL_TITLE
    description: str = ""
    status: str = "pending"
    progress: int = 0
    target_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Period(BaseModel):
    start: datetime
    end: datetime


class ReportInputs(BaseModel):
    """Raw entities gathered for a single report request."""

    student: StudentInfo
    teacher: TeacherInfo
    class_info: Optional[ClassInfo] = None
    period: Period
    assignments: List[AssignmentItem] = []
    submissions: List[SubmissionItem] = []
    goals: List[GoalItem] = []


class PerformanceSummary(BaseModel):
    total_assignments: int = 0
    submitted_assignments: int = 0
    graded_assignments: int = 0
    assignment_completion: int = 0
    grading_rate: int = 0
    average_grade: int = 0
    total_goals: int = 0
    completed_goals: int = 0
    goals_progress: int = 0
    overall_performance: int = 0


class SubjectStat(BaseModel):
    subject: str
    total_assignments: int = 0
    submitted_assignments: int = 0
    graded_assignments: int = 0
    completion: int = 0
    average_grade: int = 0


class MonthlyBucket(BaseModel):
    month: str
    label: str
    assignments: int = 0
    submissions: int = 0
    goals_completed: int = 0
    average_grade: int = 0


class AssignmentRow(BaseModel):
    id: str
    title: str
    subject: str
    due_date: Optional[datetime] = None
    status: str = "pending"
    grade: Optional[float] = None
    max_grade: int = 100
    submitted_at: Optional[datetime] = None


class Metrics(BaseModel):
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    subjects: List[SubjectStat] = []
    monthly: List[MonthlyBucket] = []


class Insights(BaseModel):
    recommendations: List[str] = []
    strengths: List[str] = []
    areas_for_improvement: List[str] = []


class ReportData(BaseModel):
    student: StudentInfo
    teacher: TeacherInfo
    class_info: Optional[ClassInfo] = None
    period: Period
    performance: PerformanceSummary
    subjects: List[SubjectStat] = []
    monthly: List[MonthlyBucket] = []
    goals: List[GoalItem] = []
    assignments: List[AssignmentRow] = []
    insights: Insights = Field(default_factory=Insights)
    generated_at: datetime
