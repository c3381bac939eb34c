import logging
from langchain_ollama import ChatOllama
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, Field
from typing import Any, Callable, Dict, List, Optional
from planner.config import settings
from planner.schemas import GenerationPayload

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The generation service failed to produce a timetable"""


def get_generator(llm: Any = None) -> "TimetableGenerator":
    """Factory function to return the appropriate generator based on config"""
    provider = settings.ai_provider.lower()
    if provider == "ollama":
        return OllamaTimetableGenerator(llm=llm)
    raise GenerationError(f"Unsupported AI provider: {settings.ai_provider}")


class ScheduledSession(BaseModel):
    """Schema for one placed study session"""
    date: str = Field(description="Date in YYYY-MM-DD format")
    start_time: str = Field(description="Start time in HH:MM format")
    end_time: str = Field(description="End time in HH:MM format")
    subject: str = Field(description="Subject name exactly as provided")
    topic: str = Field(description="Topic name exactly as provided, or 'Review'")
    type: str = Field(description="One of: study, revision, homework, break")

class TimetableOutput(BaseModel):
    """Schema for a generated timetable"""
    sessions: List[ScheduledSession] = Field(description="All study sessions between the start and end date")
    rationale: str = Field(description="Explanation of how time was divided between subjects")


def _escape(text: str) -> str:
    """Protect user text from prompt template substitution"""
    return text.replace("{", "{{").replace("}", "}}")


class TimetableGenerator:
    """Base class for AI-powered timetable generation"""

    def __init__(self, llm: Any = None):
        self.llm = llm
        self.parser = JsonOutputParser(pydantic_object=TimetableOutput)

    def generate(self, payload: GenerationPayload) -> Dict[str, Any]:
        """
        Generate a timetable for the wizard's payload.

        Args:
            payload: Subjects, topics, test dates, preferences, agenda and date range

        Returns:
            Dict with sessions and rationale

        Raises:
            GenerationError: if the model call fails or returns no sessions
        """
        system_prompt = self._build_system_prompt()
        full_prompt = self._build_full_prompt(payload)

        logger.debug("Generated prompt for %s:\n%s\n%s", self.__class__.__name__, system_prompt, full_prompt)

        prompt = ChatPromptTemplate.from_messages([
            ("system", system_prompt),
            ("human", _escape(full_prompt) + "\n\n{format_instructions}")
        ])

        chain = prompt | self.llm | self.parser

        try:
            result = chain.invoke({
                "format_instructions": self.parser.get_format_instructions()
            })
        except Exception as e:
            raise GenerationError(f"Timetable generation failed: {e}") from e

        if not isinstance(result, dict) or not isinstance(result.get("sessions"), list):
            raise GenerationError("Timetable generation returned no sessions")

        return {"sessions": result["sessions"], "rationale": result.get("rationale", "")}

    def _build_system_prompt(self) -> str:
        """Build system prompt for LLM"""
        return """You are an expert study planner who builds personalised revision timetables for students.

**Your Responsibilities:**
1. Place study sessions only inside the student's enabled daily time windows
2. Give each subject a share of total study time matching its priority percentage
3. Spend more time on topics with low confidence
4. Increase revision for a subject as its test date approaches
5. Never overlap fixed calendar events; leave homework time before its due date
6. Respect session length and break length preferences

**CRITICAL:**
ONLY use subjects and topics from the data provided. DO NOT invent subjects or topics."""

    def _build_full_prompt(self, payload: GenerationPayload) -> str:
        """Build complete prompt with the student's configuration"""
        preferences = payload.preferences

        context = f"""**Timetable Period:** {payload.start_date} to {payload.end_date}
**Timetable Mode:** {payload.timetable_mode}

**Subjects (with time allocation):**
{self._format_subjects(payload)}

**Topics (confidence 0-100):**
{self._format_topics(payload)}

**Test Dates:**
{self._format_test_dates(payload)}

**Study Windows:**
{self._format_windows(payload)}

**Session Settings:**
- Daily study hours: {preferences.daily_study_hours}
- Session duration: {preferences.session_duration} minutes ({preferences.duration_mode})
- Break duration: {preferences.break_duration} minutes

**Homework:**
{self._format_homeworks(payload)}

**Fixed Events:**
{self._format_events(payload)}
"""
        if payload.ai_notes:
            context += f"\n**Student Notes:** {payload.ai_notes}"

        return context

    def _format_subjects(self, payload: GenerationPayload) -> str:
        shares = {p.subject_id: p.percentage for p in payload.subject_priorities}
        items = []
        for subject in payload.subjects:
            share = f", {shares[subject.id]}% of study time" if subject.id in shares else ""
            items.append(f"  - {subject.name} ({subject.exam_board or 'no board'}, {subject.mode}{share})")
        return "\n".join(items)

    def _format_topics(self, payload: GenerationPayload) -> str:
        if not payload.topics:
            return "No topics listed - split time by subject."
        names = {s.id: s.name for s in payload.subjects}
        items = []
        for topic in payload.topics[:60]:  # Limit to prevent token overflow
            confidence = topic.confidence if topic.confidence is not None else 50
            items.append(f"  - {names.get(topic.subject_id, '?')}: {topic.name} (confidence {confidence})")
        return "\n".join(items)

    def _format_test_dates(self, payload: GenerationPayload) -> str:
        if not payload.test_dates:
            return "No upcoming tests."
        names = {s.id: s.name for s in payload.subjects}
        return "\n".join(
            f"  - {names.get(t.subject_id, '?')}: {t.test_type} on {t.test_date}"
            for t in payload.test_dates
        )

    def _format_windows(self, payload: GenerationPayload) -> str:
        preferences = payload.preferences
        lines = [
            f"  - {slot.day.capitalize()}: {slot.start_time}-{slot.end_time}"
            for slot in preferences.day_time_slots if slot.enabled
        ]
        if preferences.study_before_school and preferences.before_school_start:
            lines.append(f"  - Before school: {preferences.before_school_start}-{preferences.before_school_end}")
        if preferences.study_during_lunch and preferences.lunch_start:
            lines.append(f"  - Lunch: {preferences.lunch_start}-{preferences.lunch_end}")
        if preferences.study_during_free_periods and preferences.free_period_times:
            lines.append(f"  - Free periods: {', '.join(preferences.free_period_times)}")
        return "\n".join(lines) if lines else "No study days enabled."

    def _format_homeworks(self, payload: GenerationPayload) -> str:
        if not payload.homeworks:
            return "No homework."
        return "\n".join(
            f"  - {h.subject}: {h.title} (due {h.due_date}, {h.duration or 'unknown'} minutes)"
            for h in payload.homeworks
        )

    def _format_events(self, payload: GenerationPayload) -> str:
        if not payload.events:
            return "No fixed events."
        return "\n".join(f"  - {e.title}: {e.start_time} to {e.end_time}" for e in payload.events)


class OllamaTimetableGenerator(TimetableGenerator):
    """Generator using local Ollama"""

    def __init__(self, llm: Any = None):
        super().__init__(llm)
        if self.llm is None:
            self.llm = ChatOllama(
                model=settings.ollama_model,
                base_url=settings.ollama_base_url,
                temperature=0.0,
                format="json"
            )


def make_completion_handler(
    generator: TimetableGenerator,
    on_schedule: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> Callable[[GenerationPayload], bool]:
    """Adapt a generator to WizardStateMachine.finish; GenerationError propagates"""
    def handle(payload: GenerationPayload) -> bool:
        schedule = generator.generate(payload)
        if on_schedule:
            on_schedule(schedule)
        return bool(schedule["sessions"])
    return handle
