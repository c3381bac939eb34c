"""Tests for the command line wizard."""
import json

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from typer.testing import CliRunner

import cli
from planner.config import settings
from planner.generator import TimetableGenerator
from planner.storage import SqlDraftStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_database(monkeypatch, session_factory):
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    return session_factory


def invoke(*args, **kwargs):
    result = runner.invoke(cli.app, list(args), **kwargs)
    assert result.exit_code == 0, result.output
    return result


def saved_draft(session_factory):
    return json.loads(SqlDraftStore(session_factory).get(settings.draft_storage_key))


def use_generator(monkeypatch, *responses):
    generator = TimetableGenerator(llm=FakeListChatModel(responses=list(responses)))
    monkeypatch.setattr(cli, "get_generator", lambda: generator)


def build_draft():
    invoke("add-subject", "--name", "Maths", "--mode", "short-term-exam")
    invoke("add-subject", "--name", "English")
    invoke("add-topic", "--subject", "maths", "--name", "Algebra", "--confidence", "20")
    invoke("next")
    invoke("next")
    invoke("next")
    invoke("next")
    invoke("add-test-date", "--subject", "Maths", "--test-date", "2026-12-01")
    invoke("set-dates", "--start", "2026-11-01", "--end", "2026-12-15", "--name", "Mocks")
    invoke("next")


def test_status_of_fresh_wizard():
    result = invoke("status")
    assert "Step 1 of 6: Your Subjects" in result.output
    assert "No subjects yet" in result.output


def test_next_requires_a_subject(session_factory):
    result = invoke("next")
    assert "Complete this step" in result.output
    invoke("add-subject", "--name", "Maths")
    result = invoke("next")
    assert "Step 2 of 6" in result.output
    assert saved_draft(session_factory)["step"] == 2


def test_duplicate_subject_rejected():
    invoke("add-subject", "--name", "Maths")
    result = invoke("add-subject", "--name", "maths")
    assert "already added" in result.output


def test_invalid_mode_reported():
    result = invoke("add-subject", "--name", "Maths", "--mode", "someday")
    assert "Invalid subject" in result.output


def test_back_at_first_step_keeps_progress(session_factory):
    invoke("add-subject", "--name", "Maths")
    result = invoke("back")
    assert "progress is saved" in result.output
    assert saved_draft(session_factory)["subjects"][0]["name"] == "Maths"


def test_priority_commands(session_factory):
    invoke("add-subject", "--name", "Maths")
    invoke("add-subject", "--name", "English")
    invoke("add-subject", "--name", "Science")

    result = invoke("priorities")
    assert "34%" in result.output

    invoke("set-priority", "Maths", "50")
    invoke("move-priority", "1", "3")
    records = saved_draft(session_factory)["subject_priorities"]
    assert [r["percentage"] for r in records] == [25, 25, 50]
    assert [r["rank"] for r in records] == [1, 2, 3]


def test_suggest_priorities_from_confidence(session_factory):
    invoke("add-subject", "--name", "Maths")
    invoke("add-subject", "--name", "English")
    invoke("add-topic", "--subject", "Maths", "--name", "Algebra", "--confidence", "20")
    invoke("add-topic", "--subject", "English", "--name", "Poetry", "--confidence", "80")

    result = invoke("suggest-priorities")

    assert "Applied suggestions" in result.output
    assert [r["percentage"] for r in saved_draft(session_factory)["subject_priorities"]] == [80, 20]


def test_suggest_priorities_from_history(session_factory):
    invoke("add-subject", "--name", "Maths")
    invoke("add-subject", "--name", "English")
    invoke("record-score", "--user-id", "1", "--subject", "English", "--percentage", "35", "--weaknesses", "Essays, Grammar")
    invoke("record-practice", "--user-id", "1", "--subject", "Maths", "--confidence", "5")

    result = invoke("suggest-priorities", "--user-id", "1")

    assert "High Priority" in result.output
    draft = saved_draft(session_factory)
    english = next(s["id"] for s in draft["subjects"] if s["name"] == "English")
    assert draft["subject_priorities"][0]["subject_id"] == english


def test_generate_before_last_step():
    invoke("add-subject", "--name", "Maths")
    result = invoke("generate")
    assert "Finish the wizard first" in result.output


def test_generate_success_clears_draft(monkeypatch, session_factory):
    build_draft()
    session = {"date": "2026-11-02", "start_time": "16:00", "end_time": "16:45",
               "subject": "Maths", "topic": "Algebra", "type": "study"}
    use_generator(monkeypatch, json.dumps({"sessions": [session], "rationale": ""}))

    result = invoke("generate")

    assert "Timetable generated with 1 sessions" in result.output
    assert SqlDraftStore(session_factory).get(settings.draft_storage_key) is None


def test_generate_failure_keeps_draft(monkeypatch, session_factory):
    build_draft()
    use_generator(monkeypatch, "not json at all")

    result = invoke("generate")

    assert "still saved" in result.output
    assert saved_draft(session_factory)["step"] == 6


def test_discard_confirmed(session_factory):
    invoke("add-subject", "--name", "Maths")
    invoke("discard", input="y\n")
    assert SqlDraftStore(session_factory).get(settings.draft_storage_key) is None


def test_discard_cancelled(session_factory):
    invoke("add-subject", "--name", "Maths")
    result = invoke("discard", input="n\n")
    assert "Cancelled" in result.output
    assert saved_draft(session_factory)["subjects"]
