"""Tests for editing and regenerating an existing timetable's configuration."""
from planner.schemas import StudyPreferences
from planner.wizard import EDIT_TABS, TimetableEditSession


def make_session(**overrides):
    config = dict(
        subjects=[
            {"id": "maths", "name": "Maths", "exam_board": "AQA", "mode": "short-term-exam"},
            {"id": "english", "name": "English"},
        ],
        topics=[
            {"subject_id": "0", "name": "Algebra", "confidence": 30},
            {"subject_id": "english", "name": "Poetry"},
        ],
        test_dates=[{"subject_id": "maths", "test_date": "2026-12-01"}],
        preferences={"study_days": ["monday", "wednesday"], "preferred_start_time": "16:00"},
        start_date="2026-11-01",
        end_date="2026-12-15",
    )
    config.update(overrides)
    return TimetableEditSession(**config)


def test_seeded_from_stored_configuration():
    session = make_session()
    draft = session.draft
    assert [s.name for s in draft.subjects] == ["Maths", "English"]
    assert [t.subject_id for t in draft.topics] == ["maths", "english"]
    assert draft.test_dates[0].test_date == "2026-12-01"
    assert draft.preferences.enabled_days == ["monday", "wednesday"]
    assert draft.preferences.day_time_slots[0].start_time == "16:00"
    assert draft.start_date == "2026-11-01"


def test_accepts_preference_model():
    preferences = StudyPreferences(daily_study_hours=4)
    session = make_session(preferences=preferences)
    assert session.draft.preferences == preferences


def test_tabs_are_freely_reachable():
    session = make_session()
    assert session.active_tab == "dates"
    for tab in reversed(EDIT_TABS):
        assert session.jump_to(tab) is True
        assert session.active_tab == tab
        assert session.can_proceed() is True


def test_unknown_tab_is_rejected():
    session = make_session()
    assert session.jump_to("billing") is False
    assert session.active_tab == "dates"


def test_ready_configuration_has_no_problems():
    assert make_session().regeneration_problems() == []


def test_regeneration_problems():
    session = make_session(subjects=[], topics=[], test_dates=[])
    assert session.regeneration_problems() == [
        "Please add at least one subject",
        "Please add at least one topic",
    ]


def test_exam_subjects_need_test_dates():
    session = make_session(test_dates=[])
    assert session.regeneration_problems() == [
        "Please add test dates for subjects with exam preparation mode",
    ]


def test_no_exam_subjects_need_no_test_dates():
    session = make_session(
        subjects=[{"id": "art", "name": "Art"}],
        topics=[{"subject_id": "art", "name": "Drawing"}],
        test_dates=[],
    )
    assert session.regeneration_problems() == []


def test_edits_flow_into_payload():
    session = make_session()
    session.remove_subject("maths")
    session.add_topic("english", "Shakespeare", 10)

    payload = session.build_payload()

    assert [s.name for s in payload.subjects] == ["English"]
    assert [t.name for t in payload.topics] == ["Poetry", "Shakespeare"]
    assert payload.test_dates == []
    assert payload.timetable_mode == "no-exam"


def test_priorities_carried_through():
    session = make_session(subject_priorities=[
        {"subject_id": "maths", "percentage": 70, "rank": 1},
        {"subject_id": "english", "percentage": 30, "rank": 2},
    ])
    session.set_priority_percentage("english", 40)
    assert [(p.subject_id, p.percentage) for p in session.draft.subject_priorities] == [
        ("maths", 60),
        ("english", 40),
    ]


def test_seeded_priorities_are_fitted_to_subjects():
    session = make_session(subject_priorities=[
        {"subject_id": "maths", "percentage": 90, "rank": 2},
        {"subject_id": "removed", "percentage": 10, "rank": 1},
    ])
    records = session.draft.subject_priorities
    assert [r.subject_id for r in records] == ["maths", "english"]
    assert [r.percentage for r in records] == [50, 50]
    assert [r.rank for r in records] == [1, 2]
