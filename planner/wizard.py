import logging
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Sequence

from planner.config import settings
from planner.normalize import (
    dedupe_events,
    derive_timetable_mode,
    migrate_preferences,
    normalize_topic_subject_ids,
    pending_homeworks,
)
from planner.priority import PriorityAllocator, analyze_performance, suggest_from_confidence
from planner.schemas import (
    DRAFT_VERSION,
    TOTAL_STEPS,
    AgendaStep,
    CalendarEvent,
    ConfigurationStep,
    GenerationPayload,
    Homework,
    PracticeLogRecord,
    PrioritiesStep,
    StepPayload,
    StudyPreferences,
    Subject,
    SubjectAnalysis,
    SubjectMode,
    SubjectsStep,
    TestDate,
    TestScoreRecord,
    Topic,
    TopicAnalysis,
    TopicsStep,
    WizardDraft,
)
from planner.storage import KeyValueStore

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    SUBJECTS = 1
    TOPICS = 2
    PRIORITIES = 3
    AGENDA = 4
    CONFIGURATION = 5
    GENERATE = 6


STEP_TITLES = {
    WizardStep.SUBJECTS: "Your Subjects",
    WizardStep.TOPICS: "Topics & Confidence",
    WizardStep.PRIORITIES: "Subject Priority",
    WizardStep.AGENDA: "Your Agenda",
    WizardStep.CONFIGURATION: "Schedule & Preferences",
    WizardStep.GENERATE: "Generate Timetable",
}

STEP_DESCRIPTIONS = {
    WizardStep.SUBJECTS: "Add the subjects you're studying",
    WizardStep.TOPICS: "Add your topics and rate your confidence (optional)",
    WizardStep.PRIORITIES: "Set how much time to dedicate to each subject",
    WizardStep.AGENDA: "Add homework and events so the schedule can work around them",
    WizardStep.CONFIGURATION: "Set your exam dates, study schedule, and preferences",
    WizardStep.GENERATE: "Review and generate your study timetable",
}

_STEP_PAYLOADS = {
    WizardStep.SUBJECTS: SubjectsStep,
    WizardStep.TOPICS: TopicsStep,
    WizardStep.PRIORITIES: PrioritiesStep,
    WizardStep.AGENDA: AgendaStep,
    WizardStep.CONFIGURATION: ConfigurationStep,
}


class DraftSession:
    """Step-scoped editing of a WizardDraft, shared by the wizard and the edit dialog"""

    def __init__(self, draft: WizardDraft):
        self.draft = draft
        self._reconcile_priorities()

    def _changed(self) -> None:
        """Hook called after every draft mutation"""

    # Step payloads

    def payload_for(self, step: int) -> Optional[StepPayload]:
        """Typed payload of one step, None for steps without data"""
        model = _STEP_PAYLOADS.get(step)
        if model is None:
            return None
        fields = {name: getattr(self.draft, name) for name in model.model_fields if name != "step"}
        return model(**fields)

    def apply(self, payload: StepPayload) -> None:
        """Replace one step's data with the given payload"""
        for name in type(payload).model_fields:
            if name != "step":
                setattr(self.draft, name, getattr(payload, name))
        if isinstance(payload, SubjectsStep):
            self._drop_orphans()
        if isinstance(payload, (SubjectsStep, PrioritiesStep)):
            self._reconcile_priorities()
        self._changed()

    def _update_step(self, step: int, **changes: Any) -> None:
        self.apply(self.payload_for(step).model_copy(update=changes))

    def _drop_orphans(self) -> None:
        subject_ids = {subject.id for subject in self.draft.subjects}
        self.draft.topics = [t for t in self.draft.topics if t.subject_id in subject_ids]
        self.draft.test_dates = [t for t in self.draft.test_dates if t.subject_id in subject_ids]

    # Subjects

    def set_subjects(self, subjects: Sequence[Subject]) -> None:
        self._update_step(WizardStep.SUBJECTS, subjects=list(subjects))

    def add_subject(self, name: str, exam_board: str = "", mode: SubjectMode = "no-exam") -> Subject:
        subject = Subject(name=name, exam_board=exam_board, mode=mode)
        self.set_subjects(self.draft.subjects + [subject])
        return subject

    def remove_subject(self, subject_id: str) -> bool:
        remaining = [s for s in self.draft.subjects if s.id != subject_id]
        if len(remaining) == len(self.draft.subjects):
            return False
        self.set_subjects(remaining)
        return True

    def find_subject(self, name: str) -> Optional[Subject]:
        """Case-insensitive lookup by subject name"""
        for subject in self.draft.subjects:
            if subject.name.lower() == name.lower():
                return subject
        return None

    # Topics

    def set_topics(self, topics: Sequence[Topic]) -> None:
        self._update_step(WizardStep.TOPICS, topics=list(topics))

    def add_topic(self, subject_id: str, name: str, confidence: Optional[int] = 50) -> Topic:
        topic = Topic(subject_id=subject_id, name=name, confidence=confidence)
        self.set_topics(self.draft.topics + [topic])
        return topic

    def set_topic_analysis(self, analysis: Optional[TopicAnalysis]) -> None:
        self._update_step(WizardStep.TOPICS, topic_analysis=analysis)

    # Agenda

    def set_homeworks(self, homeworks: Sequence[Homework]) -> None:
        self._update_step(WizardStep.AGENDA, homeworks=list(homeworks))

    def add_homework(self, homework: Homework) -> None:
        self.set_homeworks(self.draft.homeworks + [homework])

    def set_events(self, events: Sequence[CalendarEvent]) -> None:
        self._update_step(WizardStep.AGENDA, events=list(events))

    def add_event(self, event: CalendarEvent) -> None:
        self.set_events(self.draft.events + [event])

    # Configuration

    def set_test_dates(self, test_dates: Sequence[TestDate]) -> None:
        self._update_step(WizardStep.CONFIGURATION, test_dates=list(test_dates))

    def add_test_date(self, subject_id: str, test_date: str, test_type: str = "exam") -> TestDate:
        entry = TestDate(subject_id=subject_id, test_date=test_date, test_type=test_type)
        self.set_test_dates(self.draft.test_dates + [entry])
        return entry

    def set_preferences(self, preferences: StudyPreferences) -> None:
        self._update_step(WizardStep.CONFIGURATION, preferences=preferences)

    def set_timetable_name(self, name: str) -> None:
        self._update_step(WizardStep.CONFIGURATION, timetable_name=name)

    def set_dates(self, start_date: str, end_date: str) -> None:
        self._update_step(WizardStep.CONFIGURATION, start_date=start_date, end_date=end_date)

    # Priorities

    @property
    def allocator(self) -> PriorityAllocator:
        return PriorityAllocator(self.draft.subject_priorities)

    def _save_allocator(self, allocator: PriorityAllocator) -> None:
        self._update_step(WizardStep.PRIORITIES, subject_priorities=allocator.records)

    def _reconcile_priorities(self) -> None:
        """Fit stored or supplied records to the current subjects, one each, summing to 100"""
        if not self.draft.subject_priorities:
            return
        allocator = self.allocator
        allocator.reconcile([s.id for s in self.draft.subjects])
        self.draft.subject_priorities = allocator.records

    def ensure_priorities(self) -> bool:
        """Create equal priority records when none exist yet"""
        if self.draft.subject_priorities or not self.draft.subjects:
            return False
        self._save_allocator(PriorityAllocator.initialize([s.id for s in self.draft.subjects]))
        return True

    def set_priority_percentage(self, subject_id: str, percentage: float) -> bool:
        self.ensure_priorities()
        allocator = self.allocator
        if not allocator.set_percentage(subject_id, percentage):
            return False
        self._save_allocator(allocator)
        return True

    def move_priority(self, from_index: int, to_index: int) -> bool:
        self.ensure_priorities()
        allocator = self.allocator
        if not allocator.move_subject(from_index, to_index):
            return False
        self._save_allocator(allocator)
        return True

    def apply_confidence_suggestion(self) -> Dict[str, int]:
        """Seed priorities from topic confidence (the "Apply AI Suggestions" action)"""
        suggestion = suggest_from_confidence(self.draft.subjects, self.draft.topics)
        allocator = PriorityAllocator()
        allocator.apply_suggestion(suggestion)
        self._save_allocator(allocator)
        return suggestion

    def apply_performance_ranking(
        self,
        test_scores: Sequence[TestScoreRecord],
        practice_logs: Sequence[PracticeLogRecord],
    ) -> List[SubjectAnalysis]:
        """Order priorities by performance history with equal shares"""
        analysis = analyze_performance(self.draft.subjects, test_scores, practice_logs)
        allocator = PriorityAllocator()
        allocator.apply_ranking([a.subject_id for a in analysis])
        self._save_allocator(allocator)
        return analysis

    # Payload

    def build_payload(
        self,
        homeworks: Optional[Sequence[Homework]] = None,
        events: Optional[Sequence[CalendarEvent]] = None,
    ) -> GenerationPayload:
        """Assemble the generation request from the draft"""
        draft = self.draft
        return GenerationPayload(
            subjects=draft.subjects,
            topics=normalize_topic_subject_ids(draft.topics, draft.subjects),
            test_dates=draft.test_dates,
            preferences=draft.preferences,
            homeworks=pending_homeworks(draft.homeworks if homeworks is None else homeworks),
            events=dedupe_events(draft.events if events is None else events),
            start_date=draft.start_date,
            end_date=draft.end_date,
            topic_analysis=draft.topic_analysis,
            subject_priorities=draft.subject_priorities,
            timetable_mode=derive_timetable_mode(draft.subjects),
            ai_notes=draft.preferences.ai_notes or "",
        )


class WizardStateMachine(DraftSession):
    """
    Gated multi-step onboarding wizard with a resumable draft.

    The draft is written to the store after every mutation and reloaded on
    construction, so an interrupted wizard resumes at the saved step.
    """

    def __init__(
        self,
        store: KeyValueStore,
        on_cancel: Optional[Callable[[], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        key: Optional[str] = None,
    ):
        self.store = store
        self.key = key or settings.draft_storage_key
        self.on_cancel = on_cancel
        self.on_complete = on_complete
        super().__init__(self._load())

    def _load(self) -> WizardDraft:
        try:
            raw = self.store.get(self.key)
        except Exception:
            logger.warning("Could not read saved wizard progress", exc_info=True)
            return WizardDraft()
        if raw is None:
            return WizardDraft()
        try:
            draft = WizardDraft.model_validate_json(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable wizard progress: %s", e)
            return WizardDraft()
        if draft.version != DRAFT_VERSION:
            logger.warning("Discarding wizard progress saved with draft version %s", draft.version)
            return WizardDraft()
        logger.debug("Resuming wizard at step %s", draft.step)
        return draft

    def _changed(self) -> None:
        try:
            self.store.set(self.key, self.draft.model_dump_json())
        except Exception:
            # The in-memory draft stays usable; the next mutation retries the write
            logger.warning("Could not save wizard progress", exc_info=True)

    @property
    def step(self) -> int:
        return self.draft.step

    @property
    def total_steps(self) -> int:
        return TOTAL_STEPS

    @property
    def progress(self) -> float:
        return self.step / TOTAL_STEPS * 100

    @property
    def title(self) -> str:
        return STEP_TITLES[WizardStep(self.step)]

    @property
    def description(self) -> str:
        return STEP_DESCRIPTIONS[WizardStep(self.step)]

    def can_proceed(self, step: Optional[int] = None) -> bool:
        """Whether the step's minimum data is present"""
        step = self.step if step is None else step
        draft = self.draft
        if step == WizardStep.SUBJECTS:
            return len(draft.subjects) > 0
        if step == WizardStep.CONFIGURATION:
            return bool(draft.start_date and draft.end_date and draft.timetable_name.strip())
        # Topics, priorities and agenda are optional
        return True

    def next(self) -> bool:
        if self.step >= TOTAL_STEPS or not self.can_proceed():
            return False
        self.draft.step += 1
        if self.step == WizardStep.PRIORITIES:
            self.ensure_priorities()
        self._changed()
        return True

    def back(self) -> bool:
        if self.step == 1:
            if self.on_cancel:
                # Leaving the wizard keeps the saved draft for later
                self.on_cancel()
            return False
        self.draft.step -= 1
        self._changed()
        return True

    def finish(self, generate: Callable[[GenerationPayload], Any]) -> bool:
        """
        Hand the assembled payload to the caller's generation callback.

        Args:
            generate: Called with the payload; a truthy result means the
                timetable was created

        Returns:
            True when the wizard completed and its draft was cleared. On a
            falsy result the draft is kept; exceptions propagate unchanged.
        """
        payload = self.build_payload()
        if not generate(payload):
            logger.info("Generation did not succeed; keeping wizard draft")
            return False
        self.complete()
        return True

    def complete(self) -> None:
        """Terminal transition after a successful generation"""
        self.store.delete(self.key)
        self.draft = WizardDraft()
        if self.on_complete:
            self.on_complete()

    def discard(self) -> None:
        """Explicit cancellation: forget the draft entirely"""
        self.store.delete(self.key)
        self.draft = WizardDraft()


EDIT_TABS = ("dates", "subjects", "topics", "tests", "homework", "preferences", "timing")


class TimetableEditSession(DraftSession):
    """
    Edit/regenerate variant: every tab is reachable at any time.

    Seeded from an existing timetable's configuration; nothing is persisted
    until the caller stores the regenerated timetable.
    """

    def __init__(
        self,
        subjects: Sequence[Any],
        topics: Sequence[Any],
        test_dates: Sequence[Any],
        preferences: Any,
        start_date: str,
        end_date: str,
        subject_priorities: Optional[Sequence[Any]] = None,
    ):
        subject_models = [Subject.model_validate(s) for s in subjects]
        topic_models = normalize_topic_subject_ids([Topic.model_validate(t) for t in topics], subject_models)
        if not isinstance(preferences, StudyPreferences):
            preferences = migrate_preferences(preferences)
        draft = WizardDraft(
            subjects=subject_models,
            topics=topic_models,
            test_dates=[TestDate.model_validate(t) for t in test_dates],
            preferences=preferences,
            start_date=start_date,
            end_date=end_date,
            subject_priorities=list(subject_priorities or []),
        )
        super().__init__(draft)
        self.active_tab = EDIT_TABS[0]

    def jump_to(self, tab: str) -> bool:
        if tab not in EDIT_TABS:
            return False
        self.active_tab = tab
        return True

    def can_proceed(self, tab: Optional[str] = None) -> bool:
        return True

    def regeneration_problems(self) -> List[str]:
        """Reasons the timetable cannot be regenerated yet, empty when ready"""
        problems = []
        if not self.draft.subjects:
            problems.append("Please add at least one subject")
        if not self.draft.topics:
            problems.append("Please add at least one topic")
        if any(s.needs_test_dates for s in self.draft.subjects) and not self.draft.test_dates:
            problems.append("Please add test dates for subjects with exam preparation mode")
        return problems
