import uuid
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import iso_now

Role = Literal["admin", "teacher", "student", "parent"]
AssignmentType = Literal["individual", "class"]
LatePolicy = Literal["no", "untilClose", "always"]
SubmissionStatus = Literal["not_started", "submitted", "graded", "late", "completed", "incomplete"]
GoalStatus = Literal["pending", "in_progress", "completed", "cancelled"]
GoalCategory = Literal["academic", "behavioral", "skill", "personal", "other"]
Priority = Literal["low", "medium", "high"]
PlanType = Literal["3months", "6months", "12months"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]

MAX_CO_TEACHERS = 3


def new_id() -> str:
    return str(uuid.uuid4())


# Users

class NotificationPreferences(BaseModel):
    email: bool = True
    sms: bool = False
    push: bool = True


class UserBase(BaseModel):
    username: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Role
    is_active: bool = True


class UserRecord(UserBase):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    class_id: Optional[str] = None
    created_by: Optional[str] = None
    children: List[str] = []
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    report_frequency: Literal["daily", "weekly", "monthly"] = "weekly"
    last_login: Optional[str] = None
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)
    password_hash: Optional[str] = Field(default=None, exclude=True)


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str
    password: str = Field(min_length=6)
    first_name: str
    last_name: str
    phone: Optional[str] = None


class StudentCreate(UserCreate):
    class_id: Optional[str] = None


class StudentUpdate(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    class_id: Optional[str] = None
    is_active: Optional[bool] = None


class ParentCreate(UserCreate):
    children: List[str] = []
    notification_preferences: Optional[NotificationPreferences] = None


class ParentChildrenUpdate(BaseModel):
    children: List[str]


class PasswordUpdate(BaseModel):
    password: str = Field(min_length=6)


class AuthLogin(BaseModel):
    username: str
    password: str


class AuthToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRecord


# Classes

class ClassBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    co_teachers: List[str] = []
    students: List[str] = []

    @field_validator("co_teachers")
    @classmethod
    def limit_co_teachers(cls, value: List[str]) -> List[str]:
        if len(value) > MAX_CO_TEACHERS:
            raise ValueError("Maksimum 3 yardımcı öğretmen seçebilirsiniz")
        return value


class ClassRecord(ClassBase):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    teacher_id: str
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    co_teachers: Optional[List[str]] = None
    students: Optional[List[str]] = None

    @field_validator("co_teachers")
    @classmethod
    def limit_co_teachers(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is not None and len(value) > MAX_CO_TEACHERS:
            raise ValueError("Maksimum 3 yardımcı öğretmen seçebilirsiniz")
        return value


# Assignments

class AssignmentAttachment(BaseModel):
    type: Literal["pdf", "video", "link"]
    url: str
    name: str


class AllowLate(BaseModel):
    policy: LatePolicy = "no"
    penalty_percent: int = Field(default=0, ge=0, le=100)


class AssignmentBase(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    type: AssignmentType = "individual"
    class_id: Optional[str] = None
    student_id: Optional[str] = None
    due_date: str
    publish_at: Optional[str] = None
    close_at: Optional[str] = None
    attachments: List[AssignmentAttachment] = []
    max_grade: int = Field(default=100, ge=1, le=100)
    allow_late: AllowLate = Field(default_factory=AllowLate)
    max_attempts: int = Field(default=1, ge=1)
    tags: List[str] = []
    category: Optional[GoalCategory] = None
    priority: Priority = "medium"
    success_criteria: Optional[str] = None


class AssignmentRecord(AssignmentBase):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    teacher_id: str
    progress: int = Field(default=0, ge=0, le=100)
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    publish_at: Optional[str] = None
    close_at: Optional[str] = None
    attachments: Optional[List[AssignmentAttachment]] = None
    max_grade: Optional[int] = Field(default=None, ge=1, le=100)
    allow_late: Optional[AllowLate] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)
    tags: Optional[List[str]] = None
    category: Optional[GoalCategory] = None
    priority: Optional[Priority] = None
    success_criteria: Optional[str] = None


class AssignmentProgressUpdate(BaseModel):
    progress: int


# Submissions

class SubmissionVersion(BaseModel):
    attempt: int
    content: str
    attachments: List[AssignmentAttachment] = []
    submitted_at: str


class SubmissionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    assignment_id: str
    student_id: str
    status: SubmissionStatus = "submitted"
    grade: Optional[float] = None
    raw_grade: Optional[float] = None
    max_grade: int = 100
    teacher_feedback: Optional[str] = None
    content: Optional[str] = None
    attachments: List[AssignmentAttachment] = []
    submitted_at: Optional[str] = None
    graded_at: Optional[str] = None
    attempt: int = 1
    versions: List[SubmissionVersion] = []
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class SubmissionCreate(BaseModel):
    content: Optional[str] = None
    attachments: List[AssignmentAttachment] = []


class SubmissionGrade(BaseModel):
    grade: float = Field(ge=0, le=100)
    teacher_feedback: Optional[str] = None
    status: Optional[SubmissionStatus] = None


# Goals

class GoalCreate(BaseModel):
    student_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    target_date: Optional[str] = None
    category: GoalCategory = "academic"
    priority: Priority = "medium"
    success_criteria: Optional[str] = None
    assignment_ids: List[str] = []


class GoalRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    student_id: str
    teacher_id: str
    title: str
    description: str
    target_date: str
    status: GoalStatus = "pending"
    progress: int = Field(default=0, ge=0, le=100)
    category: GoalCategory = "academic"
    priority: Priority = "medium"
    assignment_ids: List[str] = []
    success_criteria: str = ""
    parent_notification_sent: bool = False
    completed_at: Optional[str] = None
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class GoalUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    target_date: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[int] = None
    category: Optional[GoalCategory] = None
    priority: Optional[Priority] = None
    success_criteria: Optional[str] = None


class GoalStudentUpdate(BaseModel):
    status: Optional[str] = None
    progress: Optional[int] = None


# Parent notifications

class GoalUpdatePayload(BaseModel):
    type: Literal["goal_update"] = "goal_update"
    goal_id: str
    goal_title: str
    goal_status: GoalStatus
    goal_progress: int
    student_name: str


class AssignmentGradedPayload(BaseModel):
    type: Literal["assignment_graded"] = "assignment_graded"
    assignment_id: str
    submission_id: str
    assignment_title: str
    grade: float
    max_grade: int


class AssignmentCompletedPayload(BaseModel):
    type: Literal["assignment_completed"] = "assignment_completed"
    assignment_id: str
    submission_id: str
    assignment_title: str
    late: bool = False


class LowPerformancePayload(BaseModel):
    type: Literal["low_performance"] = "low_performance"
    overall_performance: int
    threshold: int
    period_start: str
    period_end: str


class GeneralPayload(BaseModel):
    type: Literal["general"] = "general"
    note: str = ""


NotificationPayload = Annotated[
    Union[
        GoalUpdatePayload,
        AssignmentGradedPayload,
        AssignmentCompletedPayload,
        LowPerformancePayload,
        GeneralPayload,
    ],
    Field(discriminator="type"),
]


class ParentNotificationRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    parent_id: str
    student_id: str
    title: str
    message: str
    is_read: bool = False
    priority: Priority = "medium"
    payload: NotificationPayload
    created_at: str = Field(default_factory=iso_now)


class NotificationLogRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    event_type: str
    channel: Literal["sms", "email"]
    message: str
    recipient: str
    status: Literal["sent", "skipped", "failed"]
    created_at: str = Field(default_factory=iso_now)


# Reports

class ReportSnapshotData(BaseModel):
    assignment_completion: int = 0
    subject_stats: Dict[str, int] = {}
    goals_progress: int = 0
    overall_performance: int = 0


class ReportRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    student_id: str
    teacher_id: str
    title: str
    content: str = ""
    data: ReportSnapshotData = Field(default_factory=ReportSnapshotData)
    is_public: bool = False
    share_token: Optional[str] = None
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class ReportCreate(BaseModel):
    title: Optional[str] = None
    content: str = ""
    is_public: bool = False
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ReportRequest(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    format: Literal["pdf", "xlsx"] = "pdf"


# Billing

class SubscriptionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    teacher_id: str
    plan_type: PlanType
    start_date: str
    end_date: str
    is_active: bool = True
    is_free_trial: bool = False
    original_price: float
    discounted_price: float
    discount_percentage: float = 0
    payment_status: PaymentStatus = "pending"
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class DiscountBase(BaseModel):
    name: str
    description: str = ""
    discount_percentage: int = Field(ge=1, le=100)
    plan_types: List[PlanType]
    is_active: bool = True
    start_date: str
    end_date: str
    max_uses: Optional[int] = Field(default=None, ge=1)


class DiscountRecord(DiscountBase):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    current_uses: int = 0
    created_by: str
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class DiscountUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    discount_percentage: Optional[int] = Field(default=None, ge=1, le=100)
    plan_types: Optional[List[PlanType]] = None
    is_active: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    max_uses: Optional[int] = Field(default=None, ge=1)


class FreeTeacherSlotRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    teacher_id: str
    slot_number: int = Field(ge=1, le=20)
    is_active: bool = True
    assigned_at: str
    expires_at: str
    created_at: str = Field(default_factory=iso_now)
