"""Study timetable wizard: draft state machine and subject priority allocation."""
