"""Views package for the flashcards app."""

from .deck import deck_list
from .health import health_check
from .learn import kanji_learn, kanji_learned, kanji_lifecycle, kanji_related
from .progress import progress_reset
from .review import (
    review_add_cards,
    review_add_group,
    review_answer,
    review_due,
    review_list,
    review_seed,
)

__all__ = [
    # Catalog
    'deck_list',
    # Review
    'review_list',
    'review_due',
    'review_answer',
    'review_seed',
    'review_add_group',
    'review_add_cards',
    # Learning
    'kanji_learn',
    'kanji_learned',
    'kanji_lifecycle',
    'kanji_related',
    # Progress
    'progress_reset',
    # Health
    'health_check',
]
