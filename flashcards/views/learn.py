"""Learning pass views for the kanji curriculum."""

from django.apps import apps
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_http_methods

from .. import learning
from ..exceptions import InvalidInput
from ..models import Card
from .helpers import (
    json_api,
    parse_json_body,
    serialize_card,
    serialize_card_with_review,
)


def _parse_int(value, name):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be an integer")


def _parse_levels(value):
    if not value:
        return None
    levels = [level.strip().upper() for level in value.split(',') if level.strip()]
    unknown = [level for level in levels if level not in learning.JLPT_LEVELS]
    if unknown:
        raise InvalidInput(f"unknown levels: {', '.join(unknown)}")
    return levels or None


@login_required
@require_GET
@json_api
def kanji_learn(request):
    """Next kanji lesson for the current user."""
    limit = _parse_int(request.GET.get('limit'), 'limit')
    levels = _parse_levels(request.GET.get('level'))
    cards = learning.learn_queue(
        request.user,
        limit=limit,
        level=levels[0] if levels else None,
    )
    return JsonResponse([serialize_card(card) for card in cards], safe=False)


@login_required
@require_http_methods(['GET', 'POST'])
@json_api
def kanji_learned(request):
    """GET lists learned kanji; POST marks kanji as learned."""
    if request.method == 'POST':
        data = parse_json_body(request)
        created = learning.mark_learned(request.user, data.get('cardIds'))
        return JsonResponse({'created': created})

    cards = learning.learned_cards(request.user)
    return JsonResponse([serialize_card(card) for card in cards], safe=False)


@login_required
@require_GET
@json_api
def kanji_lifecycle(request):
    """Kanji bucketed into to-learn, learning and mastered."""
    levels = _parse_levels(request.GET.get('levels'))
    buckets = learning.lifecycle(request.user, levels=levels)
    suggestion = buckets['suggestion']

    return JsonResponse({
        'toLearn': [serialize_card_with_review(c, r) for c, r in buckets['to_learn']],
        'learning': [serialize_card_with_review(c, r) for c, r in buckets['learning']],
        'mastered': [serialize_card_with_review(c, r) for c, r in buckets['mastered']],
        'suggestion': serialize_card(suggestion) if suggestion else None,
    })


@login_required
@require_GET
@json_api
def kanji_related(request, card_id):
    """Kanji sharing a radical component with the given card."""
    card = get_object_or_404(Card, pk=card_id)
    component_index = apps.get_app_config('flashcards').component_index

    related = learning.related_kanji(card, component_index)
    return JsonResponse({
        'card': serialize_card(card),
        'components': list(component_index.components(card.script)),
        'related': [
            dict(serialize_card(other), overlap=list(overlap))
            for other, overlap in related
        ],
    })
