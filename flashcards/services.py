"""
Review services: answering cards, enrolling cards for review and resetting
a user's progress.

Every function here runs its writes in a transaction. Database errors are not
caught; they propagate to the caller (the views turn them into HTTP 503).
"""

import logging

from django.db import transaction
from django.utils import timezone

from . import srs
from .exceptions import CardNotFound, InvalidInput
from .models import Card, Group, LearningProgress, ReviewLog, ReviewState

logger = logging.getLogger(__name__)


def enroll_cards(user, cards, now=None):
    """
    Create review states for cards the user has not enrolled yet.

    Existing review states are never touched, so enrolling the same cards
    twice creates nothing the second time.

    Returns the number of review states created.
    """
    now = now or timezone.now()
    existing = set(
        ReviewState.objects.filter(user=user).values_list('card_id', flat=True)
    )

    to_create = []
    for card in cards:
        if card.pk in existing:
            continue
        existing.add(card.pk)
        to_create.append(ReviewState.for_card(user, card, now=now))

    created = 0
    if to_create:
        with transaction.atomic():
            # The unique (user, card_id) constraint settles concurrent enrollments
            ReviewState.objects.bulk_create(to_create, ignore_conflicts=True)
            # Rows a concurrent enrollment inserted first carry its own due_at
            created = ReviewState.objects.filter(
                user=user,
                card_id__in=[review.card_id for review in to_create],
                due_at=now,
            ).count()

    logger.info("Enrolled %d cards for user %s", created, user.pk)
    return created


def seed_catalog(user, deck_id=None):
    """Enroll every catalog card, or every card of one deck."""
    cards = Card.objects.all()
    if deck_id:
        cards = cards.filter(deck_id=deck_id)
    return enroll_cards(user, cards)


def enroll_group(user, deck_id, group_key):
    """Enroll all cards of one group, e.g. the N5 kanji."""
    if not deck_id or not group_key:
        raise InvalidInput('deckId and groupId required')
    cards = Card.objects.filter(group_id=Group.make_id(deck_id, group_key))
    return enroll_cards(user, cards)


def clean_card_ids(card_ids):
    """Validate a client-supplied list of card ids."""
    if not isinstance(card_ids, (list, tuple)) or not card_ids:
        raise InvalidInput('cardIds required')
    if not all(isinstance(card_id, str) and card_id for card_id in card_ids):
        raise InvalidInput('cardIds must be non-empty strings')
    return list(card_ids)


def enroll_card_ids(user, card_ids):
    """Enroll an explicit list of cards. Unknown ids are ignored."""
    card_ids = clean_card_ids(card_ids)
    return enroll_cards(user, Card.objects.filter(pk__in=card_ids))


def submit_answer(user, card_id, rating=None, is_correct=False, answer_ms=0, now=None):
    """
    Record one answer and reschedule the card.

    The review state is created on first answer. The read-modify-write runs
    under a row lock so concurrent answers for the same card are applied one
    after the other.

    Args:
        user: The answering user
        card_id: Catalog id of the answered card
        rating: Optional explicit quality (2-5); overrides is_correct/answer_ms
        is_correct: Whether the answer was right (used without a rating)
        answer_ms: Time taken to answer in milliseconds (0 if unmeasured)
        now: Time of the answer (defaults to now)

    Returns:
        The updated ReviewState

    Raises:
        InvalidInput: card_id is missing
        CardNotFound: the card is not in the catalog
    """
    if not card_id:
        raise InvalidInput('cardId required')

    card = Card.objects.filter(pk=card_id).first()
    if card is None:
        raise CardNotFound(card_id)

    answer_ms = max(0, int(answer_ms or 0))
    quality = srs.normalize_quality(rating, is_correct, answer_ms)
    now = now or timezone.now()

    with transaction.atomic():
        review, created = ReviewState.objects.get_or_create(
            user=user,
            card_id=card.pk,
            defaults={
                'deck_id': card.deck_id,
                'group_key': card.group_key,
                'due_at': now,
            },
        )
        review = ReviewState.objects.select_for_update().get(pk=review.pk)
        review.record_answer(quality, answer_ms=answer_ms, now=now)

    logger.debug(
        "User %s answered %s with quality %d (new=%s); next due %s",
        user.pk, card.pk, quality, created, review.due_at.isoformat(),
    )
    return review


def get_learning_progress(user):
    progress, _ = LearningProgress.objects.get_or_create(user=user)
    return progress


def reset_progress(user):
    """
    Wipe all review states and review logs of a user and rewind the learning
    cursor to the start of the curriculum. Irreversible.

    Returns the number of review states deleted.
    """
    with transaction.atomic():
        deleted, _ = ReviewState.objects.filter(user=user).delete()
        ReviewLog.objects.filter(user=user).delete()
        LearningProgress.objects.update_or_create(user=user, defaults={'next_order': 0})

    logger.info("Reset progress for user %s (%d review states removed)", user.pk, deleted)
    return deleted
