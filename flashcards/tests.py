"""
Unit tests for the kanji flashcard application.

Test organization:
- SRS*Tests: Pure function tests for the scheduler and rating normalizer
- ComponentIndexTests: Pure tests for the radical component lookup
- ReviewStateModelTests: Django model tests for ReviewState and ReviewLog
- DueSelection*Tests: Due-set selection and prioritization
- *ServiceTests: Answering, enrollment, progress reset and learning pass
- *ViewTests: JSON endpoints through the test client
- *CommandTests: Management commands
"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from django.apps import apps
from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, IntegrityError, transaction
from django.test import Client, TestCase
from django.urls import reverse
from django.utils import timezone

from . import learning, services, srs
from .components import KanjiComponentIndex, parse_kradfile
from .exceptions import CardNotFound, InvalidInput
from .models import Card, Deck, Group, LearningProgress, ReviewLog, ReviewState
from .selection import priority_score, rank_due, select_due


NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=dt_timezone.utc)
STEPS = len(srs.LEARNING_STEPS)

SAMPLE_CATALOG = Path(__file__).resolve().parent / 'data' / 'sample_catalog.json'

KRADFILE_SAMPLE = """\
# KRADFILE sample
日 : 日
月 : 月
明 : 日 月
木 : 木
林 : 木
休 : 化 木
人 : 人
broken line without separator
"""


def graduated_state(**overrides):
    """A state that already left the learning phase."""
    values = {
        'due_at': NOW,
        'learning_step': STEPS,
        'reps': 1,
        'interval_days': 1,
    }
    values.update(overrides)
    return srs.SchedulingState(**values)


def create_catalog(deck_cards):
    """
    Create decks, one group per deck and cards.

    deck_cards maps deck id -> list of (card_id, script) tuples. Kanji cards
    get their list position as curriculum order and level N5.
    """
    cards = {}
    for deck_id, entries in deck_cards.items():
        deck = Deck.objects.create(id=deck_id, label=deck_id.title())
        key = 'N5' if deck_id == learning.KANJI_DECK_ID else 'basic'
        group = Group.objects.create(
            id=Group.make_id(deck_id, key), key=key, label=key, deck=deck
        )
        for position, (card_id, script) in enumerate(entries):
            is_kanji = deck_id == learning.KANJI_DECK_ID
            cards[card_id] = Card.objects.create(
                id=card_id,
                deck=deck,
                group=group,
                group_key=key,
                script=script,
                level=key if is_kanji else '',
                order=position if is_kanji else None,
            )
    return cards


KANJI = [
    ('kanji-hi', '日'),
    ('kanji-tsuki', '月'),
    ('kanji-ki', '木'),
    ('kanji-hito', '人'),
    ('kanji-kuchi', '口'),
]
HIRAGANA = [
    ('hira-a', 'あ'),
    ('hira-i', 'い'),
    ('hira-u', 'う'),
]


# =============================================================================
# Rating Normalizer Tests
# =============================================================================

class SRSNormalizeQualityTests(TestCase):
    """Tests for mapping raw answers to quality ratings."""

    def test_explicit_rating_wins(self):
        """An explicit rating overrides correctness and latency."""
        self.assertEqual(srs.normalize_quality(3, answered_correctly=False, answer_ms=1000), 3)
        self.assertEqual(srs.normalize_quality(2, answered_correctly=True, answer_ms=1000), 2)
        self.assertEqual(srs.normalize_quality(5, answered_correctly=True, answer_ms=20000), 5)

    def test_wrong_answer_is_again(self):
        self.assertEqual(srs.normalize_quality(None, answered_correctly=False, answer_ms=1000), 2)

    def test_unmeasured_latency_is_good(self):
        """Correct answers without a latency cannot be graded by speed."""
        self.assertEqual(srs.normalize_quality(None, True, 0), srs.QUALITY_GOOD)
        self.assertEqual(srs.normalize_quality(None, True, None), srs.QUALITY_GOOD)

    def test_latency_thresholds(self):
        """Faster correct answers get higher quality."""
        self.assertEqual(srs.normalize_quality(None, True, 1), srs.QUALITY_EASY)
        self.assertEqual(srs.normalize_quality(None, True, 4000), srs.QUALITY_EASY)
        self.assertEqual(srs.normalize_quality(None, True, 4001), srs.QUALITY_GOOD)
        self.assertEqual(srs.normalize_quality(None, True, 8000), srs.QUALITY_GOOD)
        self.assertEqual(srs.normalize_quality(None, True, 8001), srs.QUALITY_HARD)

    def test_out_of_range_rating_falls_back(self):
        """Ratings outside 2-5 are ignored in favour of the derived quality."""
        self.assertEqual(srs.normalize_quality(7, True, 2000), srs.QUALITY_EASY)
        self.assertEqual(srs.normalize_quality(0, False, 2000), srs.QUALITY_AGAIN)


# =============================================================================
# Scheduler Tests
# =============================================================================

class SRSEaseFactorTests(TestCase):
    """Tests for ease factor calculation."""

    def test_easy_increases_ease(self):
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, quality=5), 2.6)

    def test_good_maintains_ease(self):
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, quality=4), 2.5)

    def test_hard_decreases_ease(self):
        # 0.1 - 2 * (0.08 + 2 * 0.02) = -0.14
        self.assertAlmostEqual(srs.calculate_ease_factor(2.5, quality=3), 2.36)

    def test_ease_never_below_minimum(self):
        self.assertEqual(srs.calculate_ease_factor(srs.MIN_EASE_FACTOR, quality=3), srs.MIN_EASE_FACTOR)


class SRSIntervalTests(TestCase):
    """Tests for graduated interval growth."""

    def test_first_repetition(self):
        self.assertEqual(srs.calculate_interval(0, 1, 2.5), srs.FIRST_INTERVAL)

    def test_second_repetition(self):
        self.assertEqual(srs.calculate_interval(1, 2, 2.5), srs.SECOND_INTERVAL)

    def test_subsequent_repetition_uses_ease(self):
        self.assertEqual(srs.calculate_interval(6, 3, 2.5), 15)

    def test_rounds_half_up(self):
        self.assertEqual(srs.calculate_interval(5, 3, 2.5), 13)

    def test_interval_at_least_one_day(self):
        self.assertEqual(srs.calculate_interval(0, 5, 1.3), 1)


class SRSLearningPhaseTests(TestCase):
    """Tests for the sub-day learning steps and graduation."""

    def setUp(self):
        self.state = srs.SchedulingState.new(NOW)

    def test_new_state_defaults(self):
        self.assertEqual(self.state.due_at, NOW)
        self.assertEqual(self.state.ease_factor, srs.DEFAULT_EASE_FACTOR)
        self.assertEqual(self.state.learning_step, 0)
        self.assertEqual(self.state.interval_days, 0)
        self.assertFalse(self.state.is_graduated)

    def test_success_advances_step(self):
        """A success before the final step moves to the next step."""
        result = srs.apply_answer(self.state, quality=4, now=NOW)
        self.assertEqual(result.learning_step, 1)
        self.assertEqual(result.interval_days, 0)
        self.assertEqual(result.reps, 0)
        self.assertEqual(result.due_at, NOW + timedelta(minutes=srs.LEARNING_STEPS[1]))

    def test_graduates_after_all_steps(self):
        """len(LEARNING_STEPS) consecutive successes graduate the card."""
        state = self.state
        for _ in range(STEPS):
            state = srs.apply_answer(state, quality=4, now=NOW)

        self.assertTrue(state.is_graduated)
        self.assertEqual(state.learning_step, STEPS)
        self.assertEqual(state.reps, 1)
        self.assertEqual(state.interval_days, 1)
        self.assertEqual(state.due_at, NOW + timedelta(days=1))

    def test_easy_graduation_gets_two_days(self):
        state = self.state
        for _ in range(STEPS):
            state = srs.apply_answer(state, quality=5, now=NOW)

        self.assertEqual(state.interval_days, 2)
        self.assertEqual(state.due_at, NOW + timedelta(days=2))
        self.assertAlmostEqual(state.ease_factor, 2.5 + 0.1 * STEPS)

    def test_graduation_interval_in_allowed_range(self):
        """Any mix of passing qualities graduates with a 1 or 2 day interval."""
        for qualities in [(3, 3, 3), (5, 4, 3), (3, 4, 5), (5, 5, 4)]:
            state = self.state
            for quality in qualities:
                state = srs.apply_answer(state, quality=quality, now=NOW)
            self.assertTrue(state.is_graduated, qualities)
            self.assertIn(state.interval_days, (1, 2), qualities)

    def test_lapse_in_learning_restarts_steps(self):
        state = srs.apply_answer(self.state, quality=4, now=NOW)
        state = srs.apply_answer(state, quality=2, now=NOW)

        self.assertEqual(state.learning_step, 0)
        self.assertEqual(state.lapses, 1)
        self.assertAlmostEqual(state.ease_factor, 2.3)
        self.assertEqual(state.due_at, NOW + timedelta(minutes=srs.LEARNING_STEPS[0]))

    def test_input_state_is_not_modified(self):
        srs.apply_answer(self.state, quality=5, now=NOW)
        self.assertEqual(self.state.seen, 0)
        self.assertEqual(self.state.learning_step, 0)


class SRSGraduatedPhaseTests(TestCase):
    """Tests for graduated (day interval) scheduling."""

    def test_interval_growth(self):
        """reps=2, interval=6, ease=2.5 answered Good gives 15 days."""
        state = graduated_state(reps=2, interval_days=6, ease_factor=2.5)
        result = srs.apply_answer(state, quality=4, now=NOW)

        self.assertEqual(result.reps, 3)
        self.assertEqual(result.interval_days, 15)
        self.assertEqual(result.due_at, NOW + timedelta(days=15))
        self.assertAlmostEqual(result.ease_factor, 2.5)

    def test_second_repetition_is_six_days(self):
        result = srs.apply_answer(graduated_state(), quality=4, now=NOW)
        self.assertEqual(result.reps, 2)
        self.assertEqual(result.interval_days, 6)

    def test_hard_answer_lowers_ease(self):
        result = srs.apply_answer(graduated_state(), quality=3, now=NOW)
        self.assertAlmostEqual(result.ease_factor, 2.36)

    def test_lapse_returns_to_learning(self):
        """A graduated card that lapses relearns from the first step."""
        state = graduated_state(reps=4, interval_days=40, lapses=2, ease_factor=2.2)
        result = srs.apply_answer(state, quality=2, now=NOW)

        self.assertEqual(result.learning_step, 0)
        self.assertEqual(result.interval_days, 0)
        self.assertEqual(result.reps, 0)
        self.assertEqual(result.lapses, 3)
        self.assertAlmostEqual(result.ease_factor, 2.0)
        self.assertEqual(result.due_at, NOW + timedelta(minutes=srs.LEARNING_STEPS[0]))
        self.assertFalse(result.is_graduated)

    def test_out_of_range_quality_is_clamped(self):
        low = srs.apply_answer(graduated_state(), quality=0, now=NOW)
        self.assertEqual(low.lapses, 1)
        high = srs.apply_answer(graduated_state(), quality=9, now=NOW)
        self.assertAlmostEqual(high.ease_factor, 2.6)


class SRSInvariantTests(TestCase):
    """Properties that hold for any answer sequence."""

    SEQUENCE = [4, 2, 5, 3, 2, 2, 4, 4, 4, 5, 3, 2, 4, 5, 5, 5, 2, 3]

    def test_ease_floor_under_repeated_lapses(self):
        state = srs.SchedulingState.new(NOW)
        for _ in range(20):
            state = srs.apply_answer(state, quality=2, now=NOW)
            self.assertGreaterEqual(state.ease_factor, srs.MIN_EASE_FACTOR)
        self.assertAlmostEqual(state.ease_factor, srs.MIN_EASE_FACTOR)
        self.assertEqual(state.lapses, 20)

    def test_counters_stay_consistent(self):
        state = srs.SchedulingState.new(NOW)
        lapses = 0
        for quality in self.SEQUENCE:
            before = state
            state = srs.apply_answer(state, quality=quality, now=NOW)
            self.assertEqual(state.seen, state.correct + state.wrong)
            self.assertEqual(state.last_correct, quality >= 3)
            self.assertGreaterEqual(state.lapses, before.lapses)
            self.assertTrue(0 <= state.learning_step <= STEPS)
            self.assertGreaterEqual(state.interval_days, 0)
            if quality < 3:
                lapses += 1
                self.assertEqual(state.lapses, before.lapses + 1)
        self.assertEqual(state.seen, len(self.SEQUENCE))
        self.assertEqual(state.lapses, lapses)

    def test_timestamps_set_on_every_answer(self):
        state = srs.apply_answer(srs.SchedulingState.new(NOW), quality=4, answer_ms=1200, now=NOW)
        self.assertEqual(state.last_answered_at, NOW)
        self.assertEqual(state.last_reviewed_at, NOW)
        self.assertEqual(state.last_answer_ms, 1200)


class SRSAverageAnswerTimeTests(TestCase):
    """Tests for the answer latency moving average."""

    def test_first_latency_seeds_average(self):
        state = srs.apply_answer(srs.SchedulingState.new(NOW), quality=4, answer_ms=3000, now=NOW)
        self.assertEqual(state.avg_answer_ms, 3000)

    def test_second_latency_is_blended(self):
        state = srs.apply_answer(srs.SchedulingState.new(NOW), quality=4, answer_ms=3000, now=NOW)
        state = srs.apply_answer(state, quality=4, answer_ms=5000, now=NOW)
        self.assertEqual(state.avg_answer_ms, 3600)  # 0.7 * 3000 + 0.3 * 5000

    def test_unmeasured_latency_keeps_average(self):
        self.assertEqual(srs.update_average_answer_ms(2500, 0), 2500)
        self.assertEqual(srs.update_average_answer_ms(0, 0), 0)

    def test_seeding_after_unmeasured_answers(self):
        """An average still at zero is seeded by the first real latency."""
        self.assertEqual(srs.update_average_answer_ms(0, 7000), 7000)


# =============================================================================
# Component Index Tests
# =============================================================================

class ComponentIndexTests(TestCase):
    """Tests for the radical component lookup."""

    def setUp(self):
        self.index = KanjiComponentIndex(parse_kradfile(KRADFILE_SAMPLE.splitlines()))

    def test_parse_skips_comments_and_malformed_lines(self):
        components = parse_kradfile(KRADFILE_SAMPLE.splitlines())
        self.assertEqual(len(components), 7)
        self.assertEqual(components['明'], ('日', '月'))
        self.assertNotIn('broken', ' '.join(components))

    def test_related_by_shared_component(self):
        related = self.index.related('明', ['日', '月', '木', '明'])
        self.assertEqual([r.kanji for r in related], ['日', '月'])
        self.assertEqual(related[0].overlap, ('日',))

    def test_unknown_kanji_has_no_relations(self):
        self.assertEqual(self.index.related('語', ['日', '月']), [])

    def test_candidates_without_decomposition_are_skipped(self):
        related = self.index.related('木', ['林', '休', '語'])
        self.assertEqual([r.kanji for r in related], ['林', '休'])

    def test_missing_file_gives_empty_index(self):
        with self.assertLogs('flashcards.components', level='WARNING'):
            index = KanjiComponentIndex.from_kradfile('/nonexistent/kradfile')
        self.assertEqual(len(index), 0)
        self.assertEqual(index.related('明', ['日']), [])

    def test_load_from_file(self):
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', suffix='.krad', delete=False) as f:
            f.write(KRADFILE_SAMPLE)
        self.addCleanup(os.unlink, f.name)

        index = KanjiComponentIndex.from_kradfile(f.name)
        self.assertEqual(len(index), 7)
        self.assertIn('林', index)
        self.assertEqual(index.components('休'), ('化', '木'))


# =============================================================================
# Model Tests
# =============================================================================

class ReviewStateModelTests(TestCase):
    """Tests for the ReviewState model."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI})
        self.review = ReviewState.for_card(self.user, self.cards['kanji-hi'])
        self.review.save()

    def test_creation_defaults(self):
        """A fresh review state is due immediately with zeroed counters."""
        self.assertEqual(self.review.deck_id, 'kanji')
        self.assertEqual(self.review.group_key, 'N5')
        self.assertEqual(self.review.ease_factor, srs.DEFAULT_EASE_FACTOR)
        self.assertEqual(self.review.interval_days, 0)
        self.assertEqual(self.review.learning_step, 0)
        self.assertEqual(self.review.seen, 0)
        self.assertTrue(self.review.is_due())
        self.assertFalse(self.review.is_graduated)

    def test_record_answer_updates_state(self):
        self.review.record_answer(quality=5, answer_ms=2000, now=NOW)
        self.review.refresh_from_db()

        self.assertEqual(self.review.learning_step, 1)
        self.assertEqual(self.review.seen, 1)
        self.assertEqual(self.review.correct, 1)
        self.assertEqual(self.review.avg_answer_ms, 2000)
        self.assertEqual(self.review.due_at, NOW + timedelta(minutes=srs.LEARNING_STEPS[1]))

    def test_record_answer_creates_log(self):
        log = self.review.record_answer(quality=4, answer_ms=1500, now=NOW)

        self.assertIsInstance(log, ReviewLog)
        self.assertEqual(log.card_id, 'kanji-hi')
        self.assertEqual(log.quality, 4)
        self.assertEqual(log.answer_ms, 1500)
        self.assertEqual(log.ease_factor_before, 2.5)
        self.assertEqual(log.interval_before, 0)

    def test_is_mature(self):
        self.review.learning_step = STEPS
        self.review.interval_days = srs.MATURE_INTERVAL_DAYS
        self.assertTrue(self.review.is_mature)
        self.review.interval_days = srs.MATURE_INTERVAL_DAYS - 1
        self.assertFalse(self.review.is_mature)

    def test_one_review_state_per_user_and_card(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                ReviewState.for_card(self.user, self.cards['kanji-hi']).save()


# =============================================================================
# Due-Set Selection Tests
# =============================================================================

class DueSelectionScoreTests(TestCase):
    """Tests for the priority score and ranking."""

    def make(self, seen=0, wrong=0, avg_answer_ms=0, last_correct=True, name=''):
        return SimpleNamespace(
            seen=seen, wrong=wrong, avg_answer_ms=avg_answer_ms,
            last_correct=last_correct, name=name,
        )

    def test_score_formula(self):
        review = self.make(seen=4, wrong=1, avg_answer_ms=6000, last_correct=False)
        # 0.25 * 3 + 6000 / 4000 + 2
        self.assertAlmostEqual(priority_score(review), 4.25)

    def test_unseen_card_has_no_wrong_rate(self):
        self.assertEqual(priority_score(self.make()), 0)
        self.assertEqual(priority_score(self.make(last_correct=False)), 2)

    def test_rank_is_stable_for_ties(self):
        reviews = [self.make(name=n) for n in 'abcd']
        reviews.append(self.make(wrong=1, seen=1, name='e'))
        ranked = rank_due(reviews, 10)
        self.assertEqual([r.name for r in ranked], ['e', 'a', 'b', 'c', 'd'])

    def test_limit_has_floor_of_one(self):
        reviews = [self.make(name=n) for n in 'abc']
        self.assertEqual(len(rank_due(reviews, 0)), 1)
        self.assertEqual(len(rank_due(reviews, -5)), 1)


class DueSelectionTests(TestCase):
    """Tests for select_due against the database."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI, 'hiragana': HIRAGANA})
        services.seed_catalog(self.user)
        # Neutral baseline: nothing missed, nothing slow
        ReviewState.objects.filter(user=self.user).update(last_correct=True)
        self.now = timezone.now() + timedelta(seconds=1)

    def test_deck_filter(self):
        """Only the requested deck's due cards are returned."""
        due = select_due(self.user, deck_id='kanji', limit=10, now=self.now)
        self.assertEqual(len(due), 5)
        self.assertEqual({d.card.deck_id for d in due}, {'kanji'})
        self.assertEqual({d.review.card_id for d in due}, {card_id for card_id, _ in KANJI})

    def test_limit_returns_highest_scoring(self):
        ReviewState.objects.filter(card_id='hira-u').update(seen=2, wrong=2, last_correct=False)
        ReviewState.objects.filter(card_id='kanji-ki').update(seen=4, wrong=1, avg_answer_ms=8000)

        due = select_due(self.user, limit=2, now=self.now)

        self.assertEqual([d.card.pk for d in due], ['hira-u', 'kanji-ki'])

    def test_empty_when_nothing_due(self):
        ReviewState.objects.update(due_at=self.now + timedelta(days=1))
        self.assertEqual(select_due(self.user, now=self.now), [])

    def test_future_cards_are_excluded(self):
        ReviewState.objects.exclude(card_id='kanji-hi').update(due_at=self.now + timedelta(hours=1))
        due = select_due(self.user, now=self.now)
        self.assertEqual([d.card.pk for d in due], ['kanji-hi'])

    def test_orphan_records_are_dropped(self):
        ReviewState.objects.create(
            user=self.user, card_id='kanji-removed', deck_id='kanji', group_key='N5',
            due_at=self.now - timedelta(days=1), seen=1, wrong=1, last_correct=False,
        )
        with self.assertLogs('flashcards.selection', level='WARNING') as logs:
            due = select_due(self.user, limit=10, now=self.now)

        self.assertNotIn('kanji-removed', [d.review.card_id for d in due])
        self.assertEqual(len(due), 8)
        self.assertIn('kanji-removed', logs.output[0])

    def test_selection_is_read_only(self):
        before = list(ReviewState.objects.values_list('due_at', 'seen'))
        select_due(self.user, now=self.now)
        after = list(ReviewState.objects.values_list('due_at', 'seen'))
        self.assertEqual(before, after)

    def test_other_users_are_ignored(self):
        other = User.objects.create_user(username='other', password='testpass123')
        self.assertEqual(select_due(other, now=self.now), [])

    def test_default_limit_from_settings(self):
        with self.settings(FLASHCARDS_REVIEW_LIMIT=3):
            self.assertEqual(len(select_due(self.user, now=self.now)), 3)


# =============================================================================
# Service Tests
# =============================================================================

class EnrollmentServiceTests(TestCase):
    """Tests for insert-if-absent enrollment."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI, 'hiragana': HIRAGANA})

    def test_seed_is_idempotent(self):
        self.assertEqual(services.seed_catalog(self.user), 8)
        self.assertEqual(services.seed_catalog(self.user), 0)
        self.assertEqual(ReviewState.objects.filter(user=self.user).count(), 8)

    def test_seed_one_deck(self):
        self.assertEqual(services.seed_catalog(self.user, deck_id='hiragana'), 3)
        self.assertEqual(services.seed_catalog(self.user), 5)

    def test_reseeding_keeps_progress(self):
        services.submit_answer(self.user, 'kanji-hi', rating=5, now=NOW)
        services.seed_catalog(self.user)

        review = ReviewState.objects.get(user=self.user, card_id='kanji-hi')
        self.assertEqual(review.seen, 1)
        self.assertEqual(review.learning_step, 1)

    def test_enroll_group(self):
        self.assertEqual(services.enroll_group(self.user, 'kanji', 'N5'), 5)
        self.assertEqual(services.enroll_group(self.user, 'kanji', 'N5'), 0)

    def test_enroll_group_requires_ids(self):
        with self.assertRaises(InvalidInput):
            services.enroll_group(self.user, 'kanji', '')

    def test_enroll_card_ids_ignores_unknown(self):
        created = services.enroll_card_ids(self.user, ['hira-a', 'hira-a', 'does-not-exist'])
        self.assertEqual(created, 1)

    def test_enroll_card_ids_requires_list(self):
        for bad in (None, [], 'hira-a', [''], [3]):
            with self.assertRaises(InvalidInput, msg=repr(bad)):
                services.enroll_card_ids(self.user, bad)

    def test_enrollment_is_per_user(self):
        other = User.objects.create_user(username='other', password='testpass123')
        services.seed_catalog(self.user)
        self.assertEqual(services.seed_catalog(other), 8)

    def test_count_excludes_rows_inserted_concurrently(self):
        """A row another request inserted first is skipped and not counted."""
        real_bulk_create = ReviewState.objects.bulk_create

        def racing_bulk_create(objs, **kwargs):
            ReviewState.for_card(self.user, self.cards['kanji-hi'], now=NOW).save()
            return real_bulk_create(objs, **kwargs)

        with patch.object(ReviewState.objects, 'bulk_create', side_effect=racing_bulk_create):
            created = services.seed_catalog(self.user, deck_id='kanji')

        self.assertEqual(created, 4)
        self.assertEqual(ReviewState.objects.filter(user=self.user).count(), 5)
        self.assertEqual(ReviewState.objects.get(card_id='kanji-hi').due_at, NOW)


class SubmitAnswerServiceTests(TestCase):
    """Tests for the answer read-modify-write."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI})

    def test_creates_review_state_lazily(self):
        review = services.submit_answer(self.user, 'kanji-hi', is_correct=True, answer_ms=3000, now=NOW)

        self.assertEqual(review.card_id, 'kanji-hi')
        self.assertEqual(review.deck_id, 'kanji')
        self.assertEqual(review.seen, 1)
        self.assertEqual(review.avg_answer_ms, 3000)
        self.assertEqual(ReviewState.objects.filter(user=self.user).count(), 1)

    def test_unknown_card(self):
        with self.assertRaises(CardNotFound):
            services.submit_answer(self.user, 'kanji-missing', is_correct=True)
        self.assertFalse(ReviewState.objects.exists())
        self.assertFalse(ReviewLog.objects.exists())

    def test_missing_card_id(self):
        with self.assertRaises(InvalidInput):
            services.submit_answer(self.user, '', is_correct=True)

    def test_explicit_rating_wins(self):
        review = services.submit_answer(
            self.user, 'kanji-hi', rating=2, is_correct=True, answer_ms=1000, now=NOW
        )
        self.assertEqual(review.lapses, 1)
        self.assertFalse(review.last_correct)

    def test_latency_derives_quality(self):
        """A slow correct answer is Hard and lowers the ease factor."""
        review = services.submit_answer(self.user, 'kanji-hi', is_correct=True, answer_ms=9000, now=NOW)
        self.assertAlmostEqual(review.ease_factor, 2.36)
        self.assertEqual(ReviewLog.objects.get().quality, srs.QUALITY_HARD)

    def test_full_learning_run_persists(self):
        for _ in range(STEPS):
            services.submit_answer(self.user, 'kanji-hi', rating=4, now=NOW)

        review = ReviewState.objects.get(user=self.user, card_id='kanji-hi')
        self.assertTrue(review.is_graduated)
        self.assertEqual(review.interval_days, 1)
        self.assertEqual(review.due_at, NOW + timedelta(days=1))
        self.assertEqual(ReviewLog.objects.filter(user=self.user).count(), STEPS)


class ResetProgressServiceTests(TestCase):
    """Tests for wiping a user's progress."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.other = User.objects.create_user(username='other', password='testpass123')
        create_catalog({'kanji': KANJI})
        services.seed_catalog(self.user)
        services.seed_catalog(self.other)
        services.submit_answer(self.user, 'kanji-hi', rating=4)
        LearningProgress.objects.update_or_create(user=self.user, defaults={'next_order': 3})

    def test_reset_removes_user_state(self):
        deleted = services.reset_progress(self.user)

        self.assertEqual(deleted, 5)
        self.assertFalse(ReviewState.objects.filter(user=self.user).exists())
        self.assertFalse(ReviewLog.objects.filter(user=self.user).exists())
        self.assertEqual(LearningProgress.objects.get(user=self.user).next_order, 0)

    def test_reset_leaves_other_users_alone(self):
        services.reset_progress(self.user)
        self.assertEqual(ReviewState.objects.filter(user=self.other).count(), 5)


class LearningServiceTests(TestCase):
    """Tests for the guided learning pass."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI, 'hiragana': HIRAGANA})

    def test_learn_queue_in_curriculum_order(self):
        cards = learning.learn_queue(self.user, limit=3)
        self.assertEqual([c.pk for c in cards], ['kanji-hi', 'kanji-tsuki', 'kanji-ki'])

    def test_mark_learned_enrolls_and_moves_cursor(self):
        created = learning.mark_learned(self.user, ['kanji-hi', 'kanji-tsuki'])

        self.assertEqual(created, 2)
        self.assertEqual(LearningProgress.objects.get(user=self.user).next_order, 2)
        cards = learning.learn_queue(self.user, limit=2)
        self.assertEqual([c.pk for c in cards], ['kanji-ki', 'kanji-hito'])

    def test_cursor_never_moves_back(self):
        learning.mark_learned(self.user, ['kanji-kuchi'])
        learning.mark_learned(self.user, ['kanji-hi'])
        self.assertEqual(LearningProgress.objects.get(user=self.user).next_order, 5)

    def test_skipped_cards_fill_the_lesson(self):
        learning.mark_learned(self.user, ['kanji-hito'])
        cards = learning.learn_queue(self.user, limit=3)
        self.assertEqual([c.pk for c in cards], ['kanji-kuchi', 'kanji-hi', 'kanji-tsuki'])

    def test_level_filter(self):
        self.assertEqual(learning.learn_queue(self.user, limit=10, level='N4'), [])
        self.assertEqual(len(learning.learn_queue(self.user, limit=10, level='N5')), 5)

    def test_learned_cards(self):
        learning.mark_learned(self.user, ['kanji-ki', 'kanji-hi'])
        self.assertEqual([c.pk for c in learning.learned_cards(self.user)], ['kanji-hi', 'kanji-ki'])

    def test_mark_learned_requires_ids(self):
        for bad in (None, [], 'kanji-hi', [''], [3]):
            with self.assertRaises(InvalidInput, msg=repr(bad)):
                learning.mark_learned(self.user, bad)
        self.assertFalse(ReviewState.objects.exists())

    def test_cursor_compared_in_database(self):
        """A stale cursor read never overwrites a newer stored position."""
        LearningProgress.objects.create(user=self.user, next_order=5)
        stale = LearningProgress(user=self.user, next_order=0)

        with patch('flashcards.learning.get_learning_progress', return_value=stale):
            learning.mark_learned(self.user, ['kanji-hi'])

        self.assertEqual(LearningProgress.objects.get(user=self.user).next_order, 5)

    def test_lifecycle_buckets(self):
        learning.mark_learned(self.user, ['kanji-hi', 'kanji-tsuki'])
        ReviewState.objects.filter(card_id='kanji-hi').update(
            learning_step=STEPS, interval_days=30
        )

        buckets = learning.lifecycle(self.user)

        self.assertEqual([c.pk for c, _ in buckets['mastered']], ['kanji-hi'])
        self.assertEqual([c.pk for c, _ in buckets['learning']], ['kanji-tsuki'])
        self.assertEqual(len(buckets['to_learn']), 3)
        self.assertEqual(buckets['suggestion'].pk, 'kanji-ki')

    def test_related_kanji(self):
        index = KanjiComponentIndex(parse_kradfile(KRADFILE_SAMPLE.splitlines()))
        Card.objects.create(
            id='kanji-akarui', deck_id='kanji', group_id='kanji-N5', group_key='N5',
            script='明', level='N5', order=10,
        )

        related = learning.related_kanji(self.cards['kanji-hi'], index)

        self.assertEqual([(c.pk, overlap) for c, overlap in related], [('kanji-akarui', ('日',))])

    def test_related_kanji_keeps_cards_sharing_a_script(self):
        index = KanjiComponentIndex(parse_kradfile(KRADFILE_SAMPLE.splitlines()))
        for card_id, order in (('kanji-akarui', 10), ('kanji-mei', 11)):
            Card.objects.create(
                id=card_id, deck_id='kanji', group_id='kanji-N5', group_key='N5',
                script='明', level='N5', order=order,
            )

        related = learning.related_kanji(self.cards['kanji-hi'], index)

        self.assertEqual([c.pk for c, _ in related], ['kanji-akarui', 'kanji-mei'])


# =============================================================================
# View Tests
# =============================================================================

class APIViewTestCase(TestCase):
    """Base class: a logged-in client and a small catalog."""

    def setUp(self):
        self.client = Client()
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        self.cards = create_catalog({'kanji': KANJI, 'hiragana': HIRAGANA})
        self.client.login(username='testuser', password='testpass123')

    def post_json(self, name, payload):
        return self.client.post(
            reverse(name), data=json.dumps(payload), content_type='application/json'
        )


class ReviewAnswerViewTests(APIViewTestCase):
    """Tests for the answer endpoint."""

    def test_requires_login(self):
        self.client.logout()
        response = self.post_json('review_answer', {'cardId': 'kanji-hi', 'isCorrect': True})
        self.assertEqual(response.status_code, 302)
        self.assertIn('/admin/login/', response.url)

    def test_answer_returns_updated_state(self):
        response = self.post_json('review_answer', {
            'cardId': 'kanji-hi', 'rating': 4, 'isCorrect': True, 'answerMs': 2500,
        })

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['cardId'], 'kanji-hi')
        self.assertEqual(data['learningStep'], 1)
        self.assertEqual(data['seen'], 1)
        self.assertEqual(data['avgAnswerMs'], 2500)
        self.assertTrue(data['lastCorrect'])
        self.assertFalse(data['graduated'])
        self.assertIsNotNone(data['dueAt'])

    def test_unknown_card_is_404(self):
        response = self.post_json('review_answer', {'cardId': 'nope', 'isCorrect': True})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['cardId'], 'nope')

    def test_missing_card_id_is_400(self):
        response = self.post_json('review_answer', {'isCorrect': True})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(ReviewState.objects.exists())

    def test_invalid_rating_is_400(self):
        response = self.post_json('review_answer', {'cardId': 'kanji-hi', 'rating': 7})
        self.assertEqual(response.status_code, 400)

    def test_negative_latency_is_400(self):
        response = self.post_json('review_answer', {'cardId': 'kanji-hi', 'answerMs': -5})
        self.assertEqual(response.status_code, 400)

    def test_invalid_json_is_400(self):
        response = self.client.post(
            reverse('review_answer'), data='not json', content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid JSON')

    def test_get_not_allowed(self):
        response = self.client.get(reverse('review_answer'))
        self.assertEqual(response.status_code, 405)

    def test_store_failure_is_503(self):
        with patch('flashcards.services.submit_answer', side_effect=DatabaseError('down')):
            with self.assertLogs('flashcards.views.helpers', level='ERROR'):
                response = self.post_json('review_answer', {'cardId': 'kanji-hi', 'isCorrect': True})
        self.assertEqual(response.status_code, 503)


class ReviewDueViewTests(APIViewTestCase):
    """Tests for the due set endpoint."""

    def setUp(self):
        super().setUp()
        services.seed_catalog(self.user)

    def test_due_with_deck_filter(self):
        response = self.client.get(reverse('review_due'), {'deck': 'kanji', 'limit': 10})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 5)
        self.assertTrue(all(item['deck'] == 'kanji' for item in data))
        self.assertEqual(data[0]['review']['cardId'], data[0]['id'])

    def test_due_with_limit(self):
        response = self.client.get(reverse('review_due'), {'limit': 2})
        self.assertEqual(len(response.json()), 2)

    def test_empty_due_set(self):
        ReviewState.objects.update(due_at=timezone.now() + timedelta(days=3))
        response = self.client.get(reverse('review_due'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_bad_limit_is_400(self):
        response = self.client.get(reverse('review_due'), {'limit': 'many'})
        self.assertEqual(response.status_code, 400)

    def test_review_list(self):
        response = self.client.get(reverse('review_list'))
        self.assertEqual(len(response.json()), 8)

    def test_review_list_store_failure_is_503(self):
        with patch.object(ReviewState.objects, 'filter', side_effect=DatabaseError('down')):
            with self.assertLogs('flashcards.views.helpers', level='ERROR'):
                response = self.client.get(reverse('review_list'))
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()['error'], 'store unavailable')


class EnrollmentViewTests(APIViewTestCase):
    """Tests for the seed and add endpoints."""

    def test_seed(self):
        self.assertEqual(self.post_json('review_seed', {}).json(), {'created': 8})
        self.assertEqual(self.post_json('review_seed', {}).json(), {'created': 0})

    def test_seed_with_empty_body(self):
        response = self.client.post(reverse('review_seed'))
        self.assertEqual(response.json(), {'created': 8})

    def test_add_group(self):
        response = self.post_json('review_add_group', {'deckId': 'kanji', 'groupId': 'N5'})
        self.assertEqual(response.json(), {'created': 5})

    def test_add_group_requires_both_ids(self):
        response = self.post_json('review_add_group', {'deckId': 'kanji'})
        self.assertEqual(response.status_code, 400)

    def test_add_cards(self):
        response = self.post_json('review_add_cards', {'cardIds': ['hira-a', 'hira-i']})
        self.assertEqual(response.json(), {'created': 2})

    def test_add_cards_requires_ids(self):
        response = self.post_json('review_add_cards', {'cardIds': []})
        self.assertEqual(response.status_code, 400)


class ProgressResetViewTests(APIViewTestCase):
    """Tests for the progress reset endpoint."""

    def test_reset(self):
        services.seed_catalog(self.user)
        response = self.post_json('progress_reset', {})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'deleted': 8})
        self.assertFalse(ReviewState.objects.filter(user=self.user).exists())


class CatalogViewTests(APIViewTestCase):
    """Tests for the deck listing."""

    def test_deck_list(self):
        response = self.client.get(reverse('deck_list'))

        data = response.json()
        self.assertEqual([deck['id'] for deck in data], ['hiragana', 'kanji'])
        kanji = data[1]
        self.assertEqual(kanji['groups'][0]['id'], 'N5')
        self.assertEqual(
            [card['id'] for card in kanji['groups'][0]['cards']],
            [card_id for card_id, _ in KANJI],
        )

    def test_deck_list_store_failure_is_503(self):
        with patch.object(Deck.objects, 'prefetch_related', side_effect=DatabaseError('down')):
            with self.assertLogs('flashcards.views.helpers', level='ERROR'):
                response = self.client.get(reverse('deck_list'))
        self.assertEqual(response.status_code, 503)


class LearningViewTests(APIViewTestCase):
    """Tests for the kanji learning endpoints."""

    def test_learn(self):
        response = self.client.get(reverse('kanji_learn'), {'limit': 2, 'level': 'N5'})
        self.assertEqual([c['id'] for c in response.json()], ['kanji-hi', 'kanji-tsuki'])

    def test_learn_unknown_level_is_400(self):
        response = self.client.get(reverse('kanji_learn'), {'level': 'N9'})
        self.assertEqual(response.status_code, 400)

    def test_mark_and_list_learned(self):
        response = self.post_json('kanji_learned', {'cardIds': ['kanji-hi']})
        self.assertEqual(response.json(), {'created': 1})

        response = self.client.get(reverse('kanji_learned'))
        self.assertEqual([c['id'] for c in response.json()], ['kanji-hi'])

    def test_mark_learned_rejects_blank_ids(self):
        response = self.post_json('kanji_learned', {'cardIds': ['kanji-hi', '']})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(ReviewState.objects.exists())

    def test_lifecycle(self):
        learning.mark_learned(self.user, ['kanji-hi'])
        response = self.client.get(reverse('kanji_lifecycle'), {'levels': 'N5,N4'})

        data = response.json()
        self.assertEqual([c['id'] for c in data['learning']], ['kanji-hi'])
        self.assertEqual(data['learning'][0]['review']['cardId'], 'kanji-hi')
        self.assertEqual(len(data['toLearn']), 4)
        self.assertEqual(data['mastered'], [])
        self.assertEqual(data['suggestion']['id'], 'kanji-tsuki')

    def test_related(self):
        index = KanjiComponentIndex(parse_kradfile(KRADFILE_SAMPLE.splitlines()))
        config = apps.get_app_config('flashcards')
        with patch.object(config, 'component_index', index):
            response = self.client.get(reverse('kanji_related', args=['kanji-ki']))

        data = response.json()
        self.assertEqual(data['components'], ['木'])
        self.assertEqual(data['related'], [])

    def test_related_unknown_card_is_404(self):
        response = self.client.get(reverse('kanji_related', args=['nope']))
        self.assertEqual(response.status_code, 404)

    def test_related_store_failure_is_503(self):
        with patch('flashcards.learning.related_kanji', side_effect=DatabaseError('down')):
            with self.assertLogs('flashcards.views.helpers', level='ERROR'):
                response = self.client.get(reverse('kanji_related', args=['kanji-ki']))
        self.assertEqual(response.status_code, 503)


class HealthViewTests(TestCase):
    """Tests for the health check."""

    def test_healthy(self):
        response = self.client.get(reverse('health_check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')


# =============================================================================
# Management Command Tests
# =============================================================================

class LoadCatalogCommandTests(TestCase):
    """Tests for the load_catalog management command."""

    def test_load_sample_catalog(self):
        out = StringIO()
        call_command('load_catalog', str(SAMPLE_CATALOG), stdout=out)

        self.assertIn('Loaded 2 decks, 3 groups and 13 cards', out.getvalue())
        self.assertEqual(Card.objects.filter(deck_id='kanji').count(), 8)

    def test_kanji_order_and_level(self):
        call_command('load_catalog', str(SAMPLE_CATALOG), stdout=StringIO())

        orders = list(
            Card.objects.filter(deck_id='kanji').order_by('order').values_list('script', 'order')
        )
        self.assertEqual(orders[0], ('日', 0))
        self.assertEqual(orders[-1], ('林', 7))
        self.assertEqual(Card.objects.get(pk='kanji-akarui').level, 'N4')
        self.assertIsNone(Card.objects.get(pk='hira-a').order)
        self.assertEqual(Card.objects.get(pk='hira-a').level, '')

    def test_reload_updates_in_place(self):
        call_command('load_catalog', str(SAMPLE_CATALOG), stdout=StringIO())
        call_command('load_catalog', str(SAMPLE_CATALOG), stdout=StringIO())
        self.assertEqual(Card.objects.count(), 13)
        self.assertEqual(Group.objects.count(), 3)

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command('load_catalog', '/nonexistent/catalog.json', stdout=StringIO())

    def test_invalid_json(self):
        with tempfile.NamedTemporaryFile('w', suffix='.json', delete=False) as f:
            f.write('{not json')
        self.addCleanup(os.unlink, f.name)

        with self.assertRaises(CommandError):
            call_command('load_catalog', f.name, stdout=StringIO())

    def write_kanji_catalog(self, cards):
        catalog = [{'id': 'kanji', 'groups': [{'id': 'N5', 'cards': cards}]}]
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', suffix='.json', delete=False) as f:
            json.dump(catalog, f)
        self.addCleanup(os.unlink, f.name)
        return f.name

    def test_explicit_orders_are_reserved(self):
        """Cards without an order skip numbers claimed later in the file."""
        path = self.write_kanji_catalog([
            {'id': 'kanji-tsuki', 'script': '月'},
            {'id': 'kanji-hi', 'script': '日', 'order': 0},
            {'id': 'kanji-ki', 'script': '木'},
        ])

        call_command('load_catalog', path, stdout=StringIO())

        orders = dict(Card.objects.values_list('id', 'order'))
        self.assertEqual(orders, {'kanji-hi': 0, 'kanji-tsuki': 1, 'kanji-ki': 2})

    def test_duplicate_explicit_orders(self):
        path = self.write_kanji_catalog([
            {'id': 'kanji-hi', 'script': '日', 'order': 3},
            {'id': 'kanji-tsuki', 'script': '月', 'order': 3},
        ])

        with self.assertRaises(CommandError):
            call_command('load_catalog', path, stdout=StringIO())
        self.assertFalse(Card.objects.exists())


class EnrollCardsCommandTests(TestCase):
    """Tests for the enroll_cards management command."""

    def setUp(self):
        self.user = User.objects.create_user(username='testuser', password='testpass123')
        create_catalog({'kanji': KANJI, 'hiragana': HIRAGANA})

    def test_enroll_everything(self):
        out = StringIO()
        call_command('enroll_cards', 'testuser', stdout=out)
        self.assertIn('Enrolled 8 new card(s)', out.getvalue())

    def test_enroll_group(self):
        out = StringIO()
        call_command('enroll_cards', 'testuser', '--deck=kanji', '--group=N5', stdout=out)
        self.assertIn('Enrolled 5 new card(s)', out.getvalue())

    def test_group_requires_deck(self):
        with self.assertRaises(CommandError):
            call_command('enroll_cards', 'testuser', '--group=N5', stdout=StringIO())

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command('enroll_cards', 'ghost', stdout=StringIO())
