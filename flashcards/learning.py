"""
Guided learning pass over the kanji curriculum.

Kanji cards carry an `order`. Each user has a cursor (LearningProgress) that
marks how far through the curriculum they got; lessons hand out the next
unenrolled kanji from the cursor, and marking them learned enrolls them for
review and moves the cursor forward.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .models import Card, LearningProgress, ReviewState
from .services import clean_card_ids, enroll_cards, get_learning_progress

logger = logging.getLogger(__name__)

KANJI_DECK_ID = 'kanji'
JLPT_LEVELS = ('N5', 'N4', 'N3', 'N2', 'N1')
DEFAULT_NEW_PER_SESSION = 10


def _kanji_cards(levels=None):
    cards = Card.objects.filter(deck_id=KANJI_DECK_ID, order__isnull=False)
    if levels:
        cards = cards.filter(level__in=levels)
    return cards.order_by('order', 'id')


def _enrolled_ids(user):
    return ReviewState.objects.filter(user=user).values('card_id')


def learn_queue(user, limit=None, level=None):
    """
    Next kanji to learn, in curriculum order.

    Starts at the user's cursor. If fewer than `limit` unenrolled kanji remain
    past it, earlier kanji the user skipped are used to fill up.
    """
    if limit is None:
        limit = getattr(settings, 'FLASHCARDS_NEW_PER_SESSION', DEFAULT_NEW_PER_SESSION)
    limit = max(1, limit)

    progress = get_learning_progress(user)
    available = _kanji_cards([level] if level else None).exclude(pk__in=_enrolled_ids(user))

    cards = list(available.filter(order__gte=progress.next_order)[:limit])
    if len(cards) < limit:
        cards += list(available.filter(order__lt=progress.next_order)[:limit - len(cards)])
    return cards


def mark_learned(user, card_ids):
    """
    Enroll learned kanji for review and advance the curriculum cursor past
    the highest order among them.

    Returns the number of review states created.
    """
    card_ids = clean_card_ids(card_ids)

    cards = list(Card.objects.filter(pk__in=card_ids))
    with transaction.atomic():
        created = enroll_cards(user, cards)
        orders = [card.order for card in cards if card.order is not None]
        if orders:
            next_order = max(orders) + 1
            get_learning_progress(user)
            # Compare in the database so a concurrent call never moves it back
            moved = LearningProgress.objects.filter(
                user=user, next_order__lt=next_order,
            ).update(next_order=next_order, updated_at=timezone.now())
            if moved:
                logger.info("Learning cursor for user %s moved to %d", user.pk, next_order)
    return created


def learned_cards(user):
    """Kanji the user has enrolled, in curriculum order."""
    return list(_kanji_cards().filter(pk__in=_enrolled_ids(user)))


def lifecycle(user, levels=None):
    """
    Bucket the kanji curriculum by how far the user got with each card.

    - to_learn: not enrolled yet
    - learning: enrolled but not mature
    - mastered: graduated with an interval of at least MATURE_INTERVAL_DAYS

    The suggestion is the first to_learn kanji in curriculum order.
    """
    cards = list(_kanji_cards(levels))
    reviews = {
        review.card_id: review
        for review in ReviewState.objects.filter(user=user, deck_id=KANJI_DECK_ID)
    }

    buckets = {'to_learn': [], 'learning': [], 'mastered': []}
    for card in cards:
        review = reviews.get(card.pk)
        if review is None:
            buckets['to_learn'].append((card, None))
        elif review.is_mature:
            buckets['mastered'].append((card, review))
        else:
            buckets['learning'].append((card, review))

    buckets['suggestion'] = buckets['to_learn'][0][0] if buckets['to_learn'] else None
    return buckets


def related_kanji(card, component_index):
    """
    Catalog kanji that share a radical component with the given card.

    Returns a list of (Card, overlap) pairs in curriculum order. Cards that
    share a script are all returned.
    """
    candidates = {}
    for other in _kanji_cards().exclude(pk=card.pk):
        candidates.setdefault(other.script, []).append(other)

    return [
        (other, match.overlap)
        for match in component_index.related(card.script, candidates)
        for other in candidates[match.kanji]
    ]
