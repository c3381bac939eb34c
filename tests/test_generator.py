"""Tests for the LLM-backed timetable generator."""
import json

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from planner.config import settings
from planner.generator import (
    GenerationError,
    OllamaTimetableGenerator,
    TimetableGenerator,
    get_generator,
    make_completion_handler,
)
from planner.schemas import (
    GenerationPayload,
    Homework,
    StudyPreferences,
    Subject,
    SubjectPriority,
    TestDate,
    Topic,
)

SESSION = {
    "date": "2026-11-02",
    "start_time": "16:00",
    "end_time": "16:45",
    "subject": "Maths",
    "topic": "Algebra",
    "type": "study",
}


def fake_llm(*responses):
    return FakeListChatModel(responses=list(responses))


@pytest.fixture
def payload():
    maths = Subject(id="maths", name="Maths", exam_board="AQA", mode="short-term-exam")
    return GenerationPayload(
        subjects=[maths, Subject(id="art", name="Art {studio}")],
        topics=[Topic(subject_id="maths", name="Algebra", confidence=30)],
        test_dates=[TestDate(subject_id="maths", test_date="2026-12-01", test_type="mock")],
        preferences=StudyPreferences(study_during_lunch=True, lunch_start="12:30", lunch_end="13:10"),
        homeworks=[Homework(title="Essay", subject="Art {studio}", due_date="2026-11-05")],
        start_date="2026-11-01",
        end_date="2026-12-15",
        subject_priorities=[
            SubjectPriority(subject_id="maths", percentage=70, rank=1),
            SubjectPriority(subject_id="art", percentage=30, rank=2),
        ],
        timetable_mode="short-term-exam",
        ai_notes="No sessions after 9pm",
    )


def test_generate_returns_sessions(payload):
    response = json.dumps({"sessions": [SESSION], "rationale": "Maths first"})
    generator = TimetableGenerator(llm=fake_llm(response))

    result = generator.generate(payload)

    assert result == {"sessions": [SESSION], "rationale": "Maths first"}


def test_generate_without_rationale(payload):
    generator = TimetableGenerator(llm=fake_llm(json.dumps({"sessions": []})))
    assert generator.generate(payload) == {"sessions": [], "rationale": ""}


def test_invalid_json_raises(payload):
    generator = TimetableGenerator(llm=fake_llm("Sorry, I cannot help with that"))
    with pytest.raises(GenerationError):
        generator.generate(payload)


def test_missing_sessions_raises(payload):
    generator = TimetableGenerator(llm=fake_llm(json.dumps({"timetable": []})))
    with pytest.raises(GenerationError, match="no sessions"):
        generator.generate(payload)


def test_prompt_contains_configuration(payload):
    prompt = TimetableGenerator(llm=fake_llm("{}"))._build_full_prompt(payload)
    assert "2026-11-01 to 2026-12-15" in prompt
    assert "Maths (AQA, short-term-exam, 70% of study time)" in prompt
    assert "Maths: Algebra (confidence 30)" in prompt
    assert "Maths: mock on 2026-12-01" in prompt
    assert "Lunch: 12:30-13:10" in prompt
    assert "Essay (due 2026-11-05" in prompt
    assert "No fixed events." in prompt
    assert "No sessions after 9pm" in prompt


def test_prompt_skips_disabled_days(payload):
    slots = [slot.model_copy(update={"enabled": slot.day == "monday"}) for slot in payload.preferences.day_time_slots]
    payload.preferences = payload.preferences.model_copy(update={"day_time_slots": slots})
    windows = TimetableGenerator()._format_windows(payload)
    assert "Monday: 09:00-17:00" in windows
    assert "Tuesday" not in windows


def test_get_generator_uses_configured_provider():
    llm = fake_llm("{}")
    generator = get_generator(llm=llm)
    assert isinstance(generator, OllamaTimetableGenerator)
    assert generator.llm is llm


def test_get_generator_rejects_unknown_provider(monkeypatch):
    monkeypatch.setattr(settings, "ai_provider", "carrier-pigeon")
    with pytest.raises(GenerationError, match="Unsupported AI provider"):
        get_generator(llm=fake_llm("{}"))


def test_completion_handler(payload):
    received = []
    generator = TimetableGenerator(llm=fake_llm(
        json.dumps({"sessions": [SESSION]}),
        json.dumps({"sessions": []}),
    ))
    handler = make_completion_handler(generator, on_schedule=received.append)

    assert handler(payload) is True
    assert handler(payload) is False
    assert [len(s["sessions"]) for s in received] == [1, 0]
