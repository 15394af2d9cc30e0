"""
Spaced Repetition System (SRS) scheduling for kanji review.

This module implements an Anki-style variant of the SM-2 algorithm. New and
lapsed cards walk through a short list of sub-day learning steps before they
"graduate" to day intervals, which then grow by the card's ease factor.

Everything here is pure: functions take the current scheduling state and
return a new one without touching the database.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone


# Quality rating constants
QUALITY_AGAIN = 2          # Forgotten, counts as a lapse
QUALITY_HARD = 3           # Correct, but with significant difficulty
QUALITY_GOOD = 4           # Correct, with some hesitation
QUALITY_EASY = 5           # Immediate recall
VALID_QUALITIES = (QUALITY_AGAIN, QUALITY_HARD, QUALITY_GOOD, QUALITY_EASY)

# Algorithm constants
MIN_EASE_FACTOR = 1.3      # Minimum ease factor to prevent cards becoming too hard
DEFAULT_EASE_FACTOR = 2.5  # Starting ease factor for new cards
LAPSE_EASE_PENALTY = 0.2   # Flat ease penalty applied on every lapse
LEARNING_STEPS = (10, 60, 240)  # Learning step durations in minutes
FIRST_INTERVAL = 1         # First graduated review: 1 day
SECOND_INTERVAL = 6        # Second graduated review: 6 days
EASY_GRADUATING_INTERVAL = 2
MATURE_INTERVAL_DAYS = 21  # Graduated cards at or beyond this are "mastered"

# Answer latency thresholds used when no explicit rating is given
FAST_ANSWER_MS = 4000
SLOW_ANSWER_MS = 8000
AVG_ANSWER_WEIGHT = 0.7    # Weight of the previous average in the EWMA


@dataclass(frozen=True)
class SchedulingState:
    """Immutable snapshot of a card's scheduling state for one user."""
    due_at: datetime
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    learning_step: int = 0
    reps: int = 0
    lapses: int = 0
    seen: int = 0
    correct: int = 0
    wrong: int = 0
    last_correct: bool = False
    last_answer_ms: int = 0
    avg_answer_ms: int = 0
    last_answered_at: datetime | None = None
    last_reviewed_at: datetime | None = None

    @classmethod
    def new(cls, now: datetime) -> 'SchedulingState':
        """Fresh state for a newly enrolled card, due immediately."""
        return cls(due_at=now)

    @property
    def is_graduated(self) -> bool:
        return self.learning_step >= len(LEARNING_STEPS)


def normalize_quality(
    explicit_rating: int | None,
    answered_correctly: bool,
    answer_ms: int | None = 0
) -> int:
    """
    Map a raw answer outcome to a quality rating (2-5).

    An explicit rating from the client always wins. Without one, a wrong
    answer is "Again" and a correct answer is graded by how fast it came:
    <= 4s is Easy, <= 8s is Good, anything slower is Hard. An unmeasured
    latency (zero or missing) is treated as Good.
    """
    if explicit_rating in VALID_QUALITIES:
        return explicit_rating

    if not answered_correctly:
        return QUALITY_AGAIN

    if not answer_ms or answer_ms <= 0:
        return QUALITY_GOOD
    if answer_ms <= FAST_ANSWER_MS:
        return QUALITY_EASY
    if answer_ms <= SLOW_ANSWER_MS:
        return QUALITY_GOOD
    return QUALITY_HARD


def calculate_ease_factor(current_ease: float, quality: int) -> float:
    """
    Calculate new ease factor after a successful answer.

    The formula adjusts ease factor based on how difficult the recall was:
    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))

    Quality 5 adds 0.1, quality 4 leaves it unchanged, quality 3 lowers it.
    """
    adjustment = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    new_ease = current_ease + adjustment
    return max(MIN_EASE_FACTOR, new_ease)


def calculate_interval(current_interval: int, repetitions: int, ease_factor: float) -> int:
    """
    Day interval for a graduated card after its Nth successful repetition.

    - 1st repetition: 1 day
    - 2nd repetition: 6 days
    - Subsequent: previous interval * ease factor, rounded half up, at least 1
    """
    if repetitions <= 1:
        return FIRST_INTERVAL
    if repetitions == 2:
        return SECOND_INTERVAL
    return max(FIRST_INTERVAL, int(current_interval * ease_factor + 0.5))


def update_average_answer_ms(current_avg: int, answer_ms: int) -> int:
    """
    Exponentially weighted moving average of answer latency.

    The first measured latency seeds the average verbatim. Unmeasured
    latencies (zero) leave the average untouched.
    """
    if answer_ms <= 0:
        return current_avg
    if current_avg <= 0:
        return answer_ms
    return int(current_avg * AVG_ANSWER_WEIGHT + answer_ms * (1 - AVG_ANSWER_WEIGHT) + 0.5)


def _lapse(state: SchedulingState, now: datetime) -> dict:
    # Both phases relapse to the first learning step
    return {
        'lapses': state.lapses + 1,
        'reps': 0,
        'learning_step': 0,
        'interval_days': 0,
        'ease_factor': max(MIN_EASE_FACTOR, state.ease_factor - LAPSE_EASE_PENALTY),
        'due_at': now + timedelta(minutes=LEARNING_STEPS[0]),
    }


def _advance_learning(state: SchedulingState, quality: int, now: datetime) -> dict:
    next_step = state.learning_step + 1
    new_ease = calculate_ease_factor(state.ease_factor, quality)

    if next_step < len(LEARNING_STEPS):
        return {
            'learning_step': next_step,
            'interval_days': 0,
            'ease_factor': new_ease,
            'due_at': now + timedelta(minutes=LEARNING_STEPS[next_step]),
        }

    # Graduation
    interval = EASY_GRADUATING_INTERVAL if quality >= QUALITY_EASY else FIRST_INTERVAL
    return {
        'reps': 1,
        'learning_step': len(LEARNING_STEPS),
        'interval_days': interval,
        'ease_factor': new_ease,
        'due_at': now + timedelta(days=interval),
    }


def _advance_review(state: SchedulingState, quality: int, now: datetime) -> dict:
    reps = state.reps + 1
    interval = calculate_interval(state.interval_days, reps, state.ease_factor)
    return {
        'reps': reps,
        'interval_days': interval,
        'ease_factor': calculate_ease_factor(state.ease_factor, quality),
        'due_at': now + timedelta(days=interval),
    }


def apply_answer(
    state: SchedulingState,
    quality: int,
    answer_ms: int | None = 0,
    now: datetime | None = None
) -> SchedulingState:
    """
    Calculate the scheduling state that follows one answer.

    This is the main entry point of the scheduler. Quality below 3 is a
    lapse and sends the card back to the first learning step from either
    phase. Successful answers advance through the learning steps, graduate
    the card, or grow its day interval.

    Args:
        state: Current scheduling state of the card
        quality: Quality of recall (2-5); out-of-range values are clamped
        answer_ms: Time taken to answer in milliseconds (0 if unmeasured)
        now: Time of the answer (defaults to now)

    Returns:
        A new SchedulingState; the input is never modified
    """
    if now is None:
        now = datetime.now(timezone.utc)

    quality = min(QUALITY_EASY, max(QUALITY_AGAIN, int(quality)))
    answer_ms = max(0, int(answer_ms or 0))
    is_correct = quality >= QUALITY_HARD

    if not is_correct:
        schedule = _lapse(state, now)
    elif state.is_graduated:
        schedule = _advance_review(state, quality, now)
    else:
        schedule = _advance_learning(state, quality, now)

    return replace(
        state,
        seen=state.seen + 1,
        correct=state.correct + (1 if is_correct else 0),
        wrong=state.wrong + (0 if is_correct else 1),
        last_correct=is_correct,
        last_answer_ms=answer_ms,
        avg_answer_ms=update_average_answer_ms(state.avg_answer_ms, answer_ms),
        last_answered_at=now,
        last_reviewed_at=now,
        **schedule,
    )
