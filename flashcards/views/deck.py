"""Catalog views."""

from django.contrib.auth.decorators import login_required
from django.db.models import Prefetch
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from ..models import Card, Deck, Group
from .helpers import json_api, serialize_card


@login_required
@require_GET
@json_api
def deck_list(request):
    """All decks with their groups and cards."""
    decks = Deck.objects.prefetch_related(
        Prefetch(
            'groups',
            queryset=Group.objects.prefetch_related(
                Prefetch('cards', queryset=Card.objects.order_by('order', 'id'))
            ),
        )
    )

    response = [
        {
            'id': deck.id,
            'label': deck.label,
            'groups': [
                {
                    'id': group.key,
                    'label': group.label,
                    'cards': [serialize_card(card) for card in group.cards.all()],
                }
                for group in deck.groups.all()
            ],
        }
        for deck in decks
    ]
    return JsonResponse(response, safe=False)
