"""
Due-set selection for review sessions.

Picks which due cards to show next. Rather than plain due-date order, due
cards are ranked by a priority score that favours error-prone and slow cards,
with an extra boost for a card that was just missed.
"""

import logging
from dataclasses import dataclass

from django.conf import settings
from django.utils import timezone

from .models import Card, ReviewState

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_LIMIT = 10
WRONG_RATE_WEIGHT = 3
ANSWER_MS_SCALE = 4000
RECENT_MISS_BOOST = 2


@dataclass(frozen=True)
class DueCard:
    """A due review state resolved to its catalog card."""
    card: Card
    review: ReviewState


def priority_score(review) -> float:
    """
    Priority of a due review state; higher is shown first.

    score = wrong_rate * 3 + avg_answer_ms / 4000 + (2 if last answer missed)
    """
    wrong_rate = review.wrong / review.seen if review.seen else 0
    score = wrong_rate * WRONG_RATE_WEIGHT + review.avg_answer_ms / ANSWER_MS_SCALE
    if not review.last_correct:
        score += RECENT_MISS_BOOST
    return score


def rank_due(reviews, limit):
    """
    Sort review states by descending priority and keep the top `limit`.

    The sort is stable, so equal scores keep their incoming order. At least
    one record is returned when any are given.
    """
    ranked = sorted(reviews, key=priority_score, reverse=True)
    return ranked[:max(1, limit)]


def get_review_limit():
    return getattr(settings, 'FLASHCARDS_REVIEW_LIMIT', DEFAULT_REVIEW_LIMIT)


def select_due(user, deck_id=None, limit=None, now=None):
    """
    Build a prioritized working set of due cards for a user.

    Args:
        user: Owner of the review states
        deck_id: Optional deck to restrict the selection to
        limit: Maximum number of cards (defaults to FLASHCARDS_REVIEW_LIMIT)
        now: Time used to decide what is due (defaults to now)

    Returns:
        List of DueCard, highest priority first. Empty when nothing is due.
        Review states whose card is gone from the catalog are left out.
    """
    if limit is None:
        limit = get_review_limit()
    if now is None:
        now = timezone.now()

    reviews = ReviewState.objects.filter(user=user, due_at__lte=now)
    if deck_id:
        reviews = reviews.filter(deck_id=deck_id)
    reviews = list(reviews.order_by('due_at', 'id'))

    if not reviews:
        return []

    selected = rank_due(reviews, limit)
    cards = Card.objects.in_bulk([review.card_id for review in selected])

    due_cards = []
    for review in selected:
        card = cards.get(review.card_id)
        if card is None:
            logger.warning(
                "Skipping orphan review state %s: card %s is not in the catalog",
                review.pk, review.card_id,
            )
            continue
        due_cards.append(DueCard(card=card, review=review))
    return due_cards
