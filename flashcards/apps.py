from django.apps import AppConfig
from django.conf import settings


class FlashcardsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'flashcards'
    verbose_name = 'Kanji flashcards'

    def ready(self):
        from .components import KanjiComponentIndex

        # Loaded once per process and never mutated afterwards
        self.component_index = KanjiComponentIndex.from_kradfile(
            getattr(settings, 'KRADFILE_PATH', None)
        )
