"""Progress management views."""

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_POST

from .. import services
from .helpers import json_api


@login_required
@require_POST
@json_api
def progress_reset(request):
    """Wipe the user's review history and restart the curriculum."""
    deleted = services.reset_progress(request.user)
    return JsonResponse({'success': True, 'deleted': deleted})
