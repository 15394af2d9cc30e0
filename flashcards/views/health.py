"""Health check endpoint for container orchestration."""

from django.apps import apps
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Returns 200 if the database answers, 503 otherwise.

    Also reports how many kanji the component index knows, so a missing
    KRADFILE shows up without digging through logs.
    """
    component_index = apps.get_app_config('flashcards').component_index
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except Exception as e:
        return JsonResponse({"status": "unhealthy", "error": str(e)}, status=503)
    return JsonResponse({"status": "healthy", "kanjiComponents": len(component_index)})
