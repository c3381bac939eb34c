import uuid
from pydantic import BaseModel, Field, field_validator
from typing import Annotated, List, Literal, Optional, Union

SubjectMode = Literal["short-term-exam", "long-term-exam", "no-exam"]
DurationMode = Literal["fixed", "flexible"]

WEEK_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DRAFT_VERSION = 1
TOTAL_STEPS = 6


def new_id() -> str:
    return str(uuid.uuid4())


class Subject(BaseModel):
    """Subject the student is studying"""
    id: str = Field(default_factory=new_id)
    name: str
    exam_board: str = ""
    mode: SubjectMode = "no-exam"

    @property
    def needs_test_dates(self) -> bool:
        return self.mode != "no-exam"


class Topic(BaseModel):
    """Topic within a subject, with the student's confidence rating"""
    id: str = Field(default_factory=new_id)
    subject_id: str
    name: str
    confidence: Optional[int] = Field(default=50, ge=0, le=100)
    difficulties: Optional[str] = None


class TestDate(BaseModel):
    """Upcoming test or exam for a subject"""
    __test__ = False  # not a pytest class

    id: str = Field(default_factory=new_id)
    subject_id: str
    test_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    test_type: str = "exam"


class DayTimeSlot(BaseModel):
    """Study window for one day of the week"""
    day: str
    start_time: str = "09:00"
    end_time: str = "17:00"
    enabled: bool = True


def default_day_slots() -> List[DayTimeSlot]:
    return [DayTimeSlot(day=day) for day in WEEK_DAYS]


class StudyPreferences(BaseModel):
    """Scheduling preferences passed through to the generation service"""
    daily_study_hours: float = Field(default=2, ge=0, le=12)
    day_time_slots: List[DayTimeSlot] = Field(default_factory=default_day_slots)
    session_duration: int = Field(default=45, ge=15, le=180)
    break_duration: int = Field(default=15, ge=5, le=60)
    duration_mode: DurationMode = "flexible"
    ai_notes: Optional[str] = None

    study_before_school: bool = False
    before_school_start: Optional[str] = None
    before_school_end: Optional[str] = None
    study_during_lunch: bool = False
    lunch_start: Optional[str] = None
    lunch_end: Optional[str] = None
    study_during_free_periods: bool = False
    free_period_times: List[str] = []

    @field_validator("day_time_slots")
    @classmethod
    def one_slot_per_day(cls, slots: List[DayTimeSlot]) -> List[DayTimeSlot]:
        if sorted(slot.day for slot in slots) != sorted(WEEK_DAYS):
            raise ValueError("day_time_slots must contain exactly one entry per week day")
        return slots

    @property
    def enabled_days(self) -> List[str]:
        return [slot.day for slot in self.day_time_slots if slot.enabled]


class Homework(BaseModel):
    """Homework item the generator should schedule around"""
    id: str = Field(default_factory=new_id)
    title: str
    subject: str
    due_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    duration: Optional[int] = None
    description: Optional[str] = None
    completed: bool = False


class CalendarEvent(BaseModel):
    """Fixed calendar commitment"""
    id: str = Field(default_factory=new_id)
    title: str
    start_time: str
    end_time: str
    description: Optional[str] = None


class TopicPriority(BaseModel):
    topic_name: str
    priority_score: float
    reasoning: str = ""


class DifficultTopic(BaseModel):
    topic_name: str
    reason: str = ""
    study_suggestion: str = ""


class TopicAnalysis(BaseModel):
    """AI topic analysis carried through the draft untouched"""
    priorities: List[TopicPriority] = []
    difficult_topics: List[DifficultTopic] = []


class SubjectPriority(BaseModel):
    """One subject's share of the study time budget"""
    subject_id: str
    percentage: int
    rank: int


# Step payloads, tagged by step index

class SubjectsStep(BaseModel):
    step: Literal[1] = 1
    subjects: List[Subject] = []


class TopicsStep(BaseModel):
    step: Literal[2] = 2
    topics: List[Topic] = []
    topic_analysis: Optional[TopicAnalysis] = None


class PrioritiesStep(BaseModel):
    step: Literal[3] = 3
    subject_priorities: List[SubjectPriority] = []


class AgendaStep(BaseModel):
    step: Literal[4] = 4
    homeworks: List[Homework] = []
    events: List[CalendarEvent] = []


class ConfigurationStep(BaseModel):
    step: Literal[5] = 5
    test_dates: List[TestDate] = []
    preferences: StudyPreferences = Field(default_factory=StudyPreferences)
    timetable_name: str = "My Study Timetable"
    start_date: str = ""
    end_date: str = ""


StepPayload = Annotated[
    Union[SubjectsStep, TopicsStep, PrioritiesStep, AgendaStep, ConfigurationStep],
    Field(discriminator="step"),
]


class WizardDraft(BaseModel):
    """Complete in-progress wizard configuration"""
    version: int = DRAFT_VERSION
    step: int = Field(default=1, ge=1, le=TOTAL_STEPS)
    subjects: List[Subject] = []
    topics: List[Topic] = []
    topic_analysis: Optional[TopicAnalysis] = None
    test_dates: List[TestDate] = []
    preferences: StudyPreferences = Field(default_factory=StudyPreferences)
    homeworks: List[Homework] = []
    events: List[CalendarEvent] = []
    timetable_name: str = "My Study Timetable"
    start_date: str = ""
    end_date: str = ""
    subject_priorities: List[SubjectPriority] = []


class GenerationPayload(BaseModel):
    """Request body for the timetable generation service"""
    subjects: List[Subject]
    topics: List[Topic]
    test_dates: List[TestDate] = Field(default=[], alias="testDates")
    preferences: StudyPreferences
    homeworks: List[Homework] = []
    events: List[CalendarEvent] = []
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    topic_analysis: Optional[TopicAnalysis] = Field(default=None, alias="topicAnalysis")
    subject_priorities: List[SubjectPriority] = Field(default=[], alias="subjectPriorities")
    timetable_mode: SubjectMode = Field(default="no-exam", alias="timetableMode")
    ai_notes: str = Field(default="", alias="aiNotes")

    class Config:
        populate_by_name = True

    def to_request(self) -> dict:
        """Serialize using the service's camelCase field names"""
        return self.model_dump(by_alias=True, mode="json")


class TestScoreRecord(BaseModel):
    """Historical test score as seen by the rank scorer"""
    __test__ = False  # not a pytest class

    subject: str
    percentage: float
    strengths: List[str] = []
    weaknesses: List[str] = []

    class Config:
        from_attributes = True

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def missing_tags_are_empty(cls, value):
        return value or []


class PracticeLogRecord(BaseModel):
    """Practice confidence log as seen by the rank scorer"""
    subject_name: str
    confidence_level: Optional[int] = None

    class Config:
        from_attributes = True


class SubjectAnalysis(BaseModel):
    """Rank scorer output for one subject"""
    subject_id: str
    subject_name: str
    avg_test_score: Optional[float] = None
    avg_confidence: Optional[float] = None
    practice_count: int = 0
    weaknesses: List[str] = []
    strengths: List[str] = []
    priority_score: float
    label: str
