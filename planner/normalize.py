"""Helpers that clean up stored configuration before it reaches the generator"""

from typing import Any, Dict, List, Sequence

from planner.schemas import (
    WEEK_DAYS,
    CalendarEvent,
    DayTimeSlot,
    Homework,
    StudyPreferences,
    Subject,
    SubjectMode,
    Topic,
)

# Keys written by older clients
_SLOT_KEYS = {"startTime": "start_time", "endTime": "end_time"}
_PREFERENCE_KEYS = {"aiNotes": "ai_notes"}


def derive_timetable_mode(subjects: Sequence[Subject]) -> SubjectMode:
    """Most urgent exam mode across subjects"""
    if any(s.mode == "short-term-exam" for s in subjects):
        return "short-term-exam"
    if any(s.mode == "long-term-exam" for s in subjects):
        return "long-term-exam"
    return "no-exam"


def _rename(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    return {keys.get(key, key): value for key, value in data.items()}


def migrate_preferences(raw: Dict[str, Any]) -> StudyPreferences:
    """
    Build StudyPreferences from a stored document of any known vintage.

    Current documents carry `day_time_slots`. Older ones stored a list of
    `study_days` with a single `preferred_start_time`/`preferred_end_time`
    window, which is expanded to one slot per week day.
    """
    data = _rename(dict(raw or {}), _PREFERENCE_KEYS)

    if isinstance(data.get("day_time_slots"), list):
        data["day_time_slots"] = [_rename(slot, _SLOT_KEYS) for slot in data["day_time_slots"]]
    else:
        study_days = data.pop("study_days", None) or []
        start_time = data.pop("preferred_start_time", None) or "09:00"
        end_time = data.pop("preferred_end_time", None) or "17:00"
        data["day_time_slots"] = [
            DayTimeSlot(day=day, start_time=start_time, end_time=end_time, enabled=day in study_days)
            for day in WEEK_DAYS
        ]

    # Falsy values fall back to defaults, as older clients saved zeros for unset fields
    for key in ("daily_study_hours", "session_duration", "break_duration", "duration_mode"):
        if not data.get(key):
            data.pop(key, None)

    known = set(StudyPreferences.model_fields)
    return StudyPreferences(**{key: value for key, value in data.items() if key in known})


def normalize_topic_subject_ids(topics: Sequence[Topic], subjects: Sequence[Subject]) -> List[Topic]:
    """Map index-based subject references ("0", "1", ...) to real subject ids"""
    known_ids = {subject.id for subject in subjects}
    normalized = []
    for topic in topics:
        if topic.subject_id not in known_ids and topic.subject_id.isdigit():
            index = int(topic.subject_id)
            if index < len(subjects):
                topic = topic.model_copy(update={"subject_id": subjects[index].id})
        normalized.append(topic)
    return normalized


def dedupe_events(events: Sequence[CalendarEvent]) -> List[CalendarEvent]:
    """Collapse recurring instances that share title, start and end"""
    unique: Dict[tuple, CalendarEvent] = {}
    for event in events:
        unique[(event.title, event.start_time, event.end_time)] = event
    return list(unique.values())


def pending_homeworks(homeworks: Sequence[Homework]) -> List[Homework]:
    return [homework for homework in homeworks if not homework.completed]
