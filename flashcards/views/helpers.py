"""Shared helper functions for the JSON views."""

import json
import logging
from functools import wraps

from django.db import DatabaseError
from django.http import JsonResponse

from ..exceptions import CardNotFound, InvalidInput

logger = logging.getLogger(__name__)


def parse_json_body(request):
    """Decode a JSON object request body. An empty body is an empty object."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidInput('Invalid JSON')
    if not isinstance(data, dict):
        raise InvalidInput('Expected a JSON object')
    return data


def json_api(view):
    """
    Translate service errors into JSON error responses.

    InvalidInput -> 400, CardNotFound -> 404, DatabaseError -> 503.
    """
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except InvalidInput as e:
            return JsonResponse({'error': str(e)}, status=400)
        except CardNotFound as e:
            return JsonResponse({'error': 'card not found', 'cardId': e.card_id}, status=404)
        except DatabaseError:
            logger.exception("Review store unavailable while handling %s", request.path)
            return JsonResponse({'error': 'store unavailable'}, status=503)
    return wrapper


def _isoformat(value):
    return value.isoformat() if value else None


def serialize_card(card):
    return {
        'id': card.id,
        'deck': card.deck_id,
        'group': card.group_key,
        'script': card.script,
        'romaji': card.romaji,
        'meaning': card.meaning,
        'onyomi': card.onyomi,
        'kunyomi': card.kunyomi,
        'level': card.level or None,
        'order': card.order,
    }


def serialize_review_state(review):
    return {
        'id': review.pk,
        'cardId': review.card_id,
        'deck': review.deck_id,
        'group': review.group_key,
        'dueAt': _isoformat(review.due_at),
        'easeFactor': round(review.ease_factor, 2),
        'intervalDays': review.interval_days,
        'learningStep': review.learning_step,
        'graduated': review.is_graduated,
        'reps': review.reps,
        'lapses': review.lapses,
        'seen': review.seen,
        'correct': review.correct,
        'wrong': review.wrong,
        'lastCorrect': review.last_correct,
        'lastAnswerMs': review.last_answer_ms,
        'avgAnswerMs': review.avg_answer_ms,
        'lastAnsweredAt': _isoformat(review.last_answered_at),
        'lastReviewedAt': _isoformat(review.last_reviewed_at),
    }


def serialize_card_with_review(card, review):
    data = serialize_card(card)
    data['review'] = serialize_review_state(review) if review else None
    return data
