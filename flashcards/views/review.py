"""Review views: due sets, answers and enrollment."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .. import services
from ..forms import AddGroupForm, AnswerForm, DueQueryForm
from ..models import ReviewState
from ..selection import select_due
from .helpers import (
    json_api,
    parse_json_body,
    serialize_card_with_review,
    serialize_review_state,
)


@login_required
@require_GET
@json_api
def review_list(request):
    """All review states of the current user."""
    reviews = ReviewState.objects.filter(user=request.user)
    return JsonResponse([serialize_review_state(r) for r in reviews], safe=False)


@login_required
@require_GET
@json_api
def review_due(request):
    """Prioritized due cards, optionally for one deck."""
    query = DueQueryForm.from_payload(request.GET).cleaned_or_raise()
    due_cards = select_due(
        request.user,
        deck_id=query['deck'] or None,
        limit=query['limit'],
    )
    return JsonResponse(
        [serialize_card_with_review(due.card, due.review) for due in due_cards],
        safe=False,
    )


@login_required
@require_POST
@json_api
def review_answer(request):
    """Submit an answer for a card and return its updated review state."""
    answer = AnswerForm.from_payload(parse_json_body(request)).cleaned_or_raise()
    review = services.submit_answer(
        request.user,
        answer['card_id'],
        rating=answer['rating'],
        is_correct=answer['is_correct'],
        answer_ms=answer['answer_ms'] or 0,
    )
    return JsonResponse(serialize_review_state(review))


@login_required
@require_POST
@json_api
def review_seed(request):
    """Enroll the whole catalog (or one deck) for review."""
    data = parse_json_body(request)
    created = services.seed_catalog(request.user, deck_id=data.get('deckId'))
    return JsonResponse({'created': created})


@login_required
@require_POST
@json_api
def review_add_group(request):
    """Enroll every card of one group for review."""
    group = AddGroupForm.from_payload(parse_json_body(request)).cleaned_or_raise()
    created = services.enroll_group(request.user, group['deck_id'], group['group_id'])
    return JsonResponse({'created': created})


@login_required
@require_POST
@json_api
def review_add_cards(request):
    """Enroll an explicit list of cards for review."""
    data = parse_json_body(request)
    created = services.enroll_card_ids(request.user, data.get('cardIds'))
    return JsonResponse({'created': created})
