import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from planner.schemas import (
    PracticeLogRecord,
    Subject,
    SubjectAnalysis,
    SubjectPriority,
    TestScoreRecord,
    Topic,
)

TOTAL_PERCENTAGE = 100
MIN_PERCENTAGE = 5
MAX_PERCENTAGE = 80

NEUTRAL_CONFIDENCE = 50
BASELINE_PRIORITY_SCORE = 50


def round_half_up(value: float) -> int:
    """Round .5 upwards, unlike the built-in banker's rounding"""
    return math.floor(value + 0.5)


def equal_split(count: int) -> List[int]:
    """floor(100/count) each, with the integer remainder on the first share"""
    if count <= 0:
        return []
    base = TOTAL_PERCENTAGE // count
    shares = [base] * count
    shares[0] += TOTAL_PERCENTAGE - base * count
    return shares


class PriorityAllocator:
    """
    Ordered collection of subject time shares that always sums to 100.

    Records are kept in rank order; rank is the 1-based position. Edits
    redistribute the difference proportionally over the other subjects and
    any rounding drift is absorbed by the first other subject.
    """

    def __init__(self, priorities: Optional[Iterable[SubjectPriority]] = None):
        self._records = sorted(
            (p.model_copy() for p in priorities or []),
            key=lambda p: p.rank,
        )
        self._rerank()

    @classmethod
    def initialize(cls, subject_ids: Sequence[str]) -> "PriorityAllocator":
        """Equal allocation in input order"""
        allocator = cls()
        allocator._records = cls._equal_records(subject_ids)
        return allocator

    @staticmethod
    def _equal_records(subject_ids: Sequence[str]) -> List[SubjectPriority]:
        return [
            SubjectPriority(subject_id=subject_id, percentage=share, rank=index + 1)
            for index, (subject_id, share) in enumerate(zip(subject_ids, equal_split(len(subject_ids))))
        ]

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> List[SubjectPriority]:
        return [record.model_copy() for record in self._records]

    @property
    def subject_ids(self) -> List[str]:
        return [record.subject_id for record in self._records]

    @property
    def total(self) -> int:
        return sum(record.percentage for record in self._records)

    def to_list(self) -> List[dict]:
        """Plain dicts in rank order, as stored in the draft"""
        return [record.model_dump() for record in self._records]

    def percentage_for(self, subject_id: str) -> Optional[int]:
        record = self._find(subject_id)
        return record.percentage if record else None

    def _find(self, subject_id: str) -> Optional[SubjectPriority]:
        for record in self._records:
            if record.subject_id == subject_id:
                return record
        return None

    def _rerank(self) -> None:
        for index, record in enumerate(self._records):
            record.rank = index + 1

    def _bounds(self) -> Tuple[int, int]:
        # Bounds relax only when more than 20 subjects make [5, 80] unreachable
        count = max(len(self._records), 1)
        low = min(MIN_PERCENTAGE, TOTAL_PERCENTAGE // count)
        high = max(MAX_PERCENTAGE, -(-TOTAL_PERCENTAGE // count))
        return low, high

    def _settle(self, exclude: Optional[str] = None) -> None:
        """Push the residual onto the first record other than `exclude`"""
        low, high = self._bounds()
        residual = TOTAL_PERCENTAGE - self.total
        for record in self._records:
            if residual == 0:
                break
            if record.subject_id == exclude:
                continue
            adjusted = min(high, max(low, record.percentage + residual))
            residual -= adjusted - record.percentage
            record.percentage = adjusted

    def set_percentage(self, subject_id: str, value: float) -> bool:
        """
        Set one subject's share and rebalance the others.

        Args:
            subject_id: Subject whose share is edited
            value: Requested percentage, clamped to [5, 80] and to what the
                remaining subjects can absorb

        Returns:
            False when the subject has no record, True otherwise
        """
        record = self._find(subject_id)
        if record is None:
            return False

        if len(self._records) == 1:
            # Nobody else can absorb the remainder
            record.percentage = TOTAL_PERCENTAGE
            return True

        low, high = self._bounds()
        others = [r for r in self._records if r.subject_id != subject_id]
        new_value = min(high, max(low, round_half_up(value)))
        new_value = min(new_value, TOTAL_PERCENTAGE - low * len(others))
        new_value = max(new_value, TOTAL_PERCENTAGE - high * len(others))

        diff = new_value - record.percentage
        other_total = sum(r.percentage for r in others)

        for other in others:
            if other_total == 0:
                other.percentage = (TOTAL_PERCENTAGE - new_value) // len(others)
            else:
                share = other.percentage - diff * (other.percentage / other_total)
                other.percentage = min(high, max(low, round_half_up(share)))

        record.percentage = new_value
        self._settle(exclude=subject_id)
        return True

    def move_subject(self, from_index: int, to_index: int) -> bool:
        """Move one record to a new position and re-rank; shares are untouched"""
        count = len(self._records)
        if not (0 <= from_index < count and 0 <= to_index < count):
            return False
        if from_index == to_index:
            return False
        record = self._records.pop(from_index)
        self._records.insert(to_index, record)
        self._rerank()
        return True

    def _fit(self) -> None:
        """Pull every share into bounds, then settle the total to 100"""
        if not self._records:
            return
        low, high = self._bounds()
        for record in self._records:
            record.percentage = min(high, max(low, record.percentage))
        self._settle()

    def apply_suggestion(self, suggestion: Dict[str, int]) -> None:
        """Replace shares with a suggested distribution, ranked in its order"""
        self._records = [
            SubjectPriority(subject_id=subject_id, percentage=percentage, rank=index + 1)
            for index, (subject_id, percentage) in enumerate(suggestion.items())
        ]
        self._fit()

    def apply_ranking(self, subject_ids: Sequence[str]) -> None:
        """Equal shares in the given order, the remainder going to rank 1"""
        self._records = self._equal_records(subject_ids)

    def reconcile(self, subject_ids: Sequence[str]) -> bool:
        """
        Match the records to the current subject list.

        Records of unknown subjects and repeated records are dropped. New
        subjects get an equal share (100 // count) appended after the
        survivors, which are scaled proportionally to fill the rest. The
        result is fitted into bounds and sums to 100.

        Returns:
            Whether any record or share changed
        """
        wanted = list(dict.fromkeys(subject_ids))
        before = [(r.subject_id, r.percentage) for r in self._records]

        survivors: List[SubjectPriority] = []
        seen = set()
        for record in self._records:
            if record.subject_id in wanted and record.subject_id not in seen:
                seen.add(record.subject_id)
                survivors.append(record)
        added = [subject_id for subject_id in wanted if subject_id not in seen]

        if not survivors:
            self._records = self._equal_records(wanted)
        else:
            share = TOTAL_PERCENTAGE // len(wanted)
            budget = TOTAL_PERCENTAGE - share * len(added)
            survivor_total = sum(r.percentage for r in survivors)
            for record in survivors:
                if survivor_total > 0:
                    record.percentage = round_half_up(record.percentage * budget / survivor_total)
                else:
                    record.percentage = budget // len(survivors)
            self._records = survivors + [
                SubjectPriority(subject_id=subject_id, percentage=share, rank=0) for subject_id in added
            ]
            self._rerank()
            self._fit()

        return [(r.subject_id, r.percentage) for r in self._records] != before


def subject_confidence(subject_id: str, topics: Iterable[Topic]) -> Optional[int]:
    """Rounded mean topic confidence for a subject, None without topics"""
    ratings = [
        topic.confidence if topic.confidence is not None else NEUTRAL_CONFIDENCE
        for topic in topics
        if topic.subject_id == subject_id
    ]
    if not ratings:
        return None
    return round_half_up(sum(ratings) / len(ratings))


def suggest_from_confidence(subjects: Sequence[Subject], topics: Sequence[Topic]) -> Dict[str, int]:
    """
    Suggest time shares from topic confidence (lower confidence = more time).

    Each subject scores 100 - average confidence (neutral 50 without topics);
    scores are scaled to 100 and the rounding remainder goes to the first
    subject. A zero total falls back to an equal split.
    """
    if not subjects:
        return {}

    inverted = {}
    for subject in subjects:
        confidence = subject_confidence(subject.id, topics)
        inverted[subject.id] = TOTAL_PERCENTAGE - (NEUTRAL_CONFIDENCE if confidence is None else confidence)

    score_total = sum(inverted.values())
    if score_total == 0:
        return dict(zip(inverted, equal_split(len(inverted))))

    suggestion = {
        subject_id: round_half_up(score / score_total * TOTAL_PERCENTAGE)
        for subject_id, score in inverted.items()
    }
    first = next(iter(suggestion))
    suggestion[first] += TOTAL_PERCENTAGE - sum(suggestion.values())
    return suggestion


def score_subject(
    avg_test_score: Optional[float],
    avg_confidence: Optional[float],
    weaknesses: Iterable[str],
    strengths: Iterable[str],
) -> float:
    """
    Priority score for a subject; higher means it needs more time.

    Args:
        avg_test_score: Mean test percentage, None without test history
        avg_confidence: Mean practice confidence on a 1-5 scale, None without logs
        weaknesses: Weakness tags from test feedback
        strengths: Strength tags from test feedback

    Returns:
        Score clamped to [0, 100]
    """
    score = float(BASELINE_PRIORITY_SCORE)
    if avg_test_score is not None:
        score += (100 - avg_test_score) * 0.4
    if avg_confidence is not None:
        score += (5 - avg_confidence) * 8
    score += len(set(weaknesses)) * 5
    score -= len(set(strengths)) * 2
    return max(0.0, min(100.0, score))


def priority_label(score: float) -> str:
    if score >= 70:
        return "High Priority"
    elif score >= 50:
        return "Medium Priority"
    return "Low Priority"


def _distinct(tags: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(tags))


def analyze_performance(
    subjects: Sequence[Subject],
    test_scores: Sequence[TestScoreRecord],
    practice_logs: Sequence[PracticeLogRecord],
) -> List[SubjectAnalysis]:
    """Score every subject from its history, most in need of time first"""
    results = []
    for subject in subjects:
        name = subject.name.lower()

        scores = [s for s in test_scores if s.subject.lower() == name]
        avg_test_score = sum(s.percentage for s in scores) / len(scores) if scores else None
        weaknesses = _distinct(tag for s in scores for tag in s.weaknesses)
        strengths = _distinct(tag for s in scores for tag in s.strengths)

        practice = [p for p in practice_logs if p.subject_name.lower() == name]
        ratings = [p.confidence_level for p in practice if p.confidence_level]
        avg_confidence = sum(ratings) / len(ratings) if ratings else None

        score = score_subject(avg_test_score, avg_confidence, weaknesses, strengths)
        results.append(SubjectAnalysis(
            subject_id=subject.id,
            subject_name=subject.name,
            avg_test_score=avg_test_score,
            avg_confidence=avg_confidence,
            practice_count=len(practice),
            weaknesses=weaknesses,
            strengths=strengths,
            priority_score=score,
            label=priority_label(score),
        ))

    # Stable sort keeps subject order for ties
    results.sort(key=lambda analysis: analysis.priority_score, reverse=True)
    return results
