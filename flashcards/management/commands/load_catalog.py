"""
Management command to load the card catalog from a JSON file.

    python manage.py load_catalog flashcards/data/sample_catalog.json

The file holds a list of decks (or {"decks": [...]}), each with groups of
cards. Decks, groups and cards are created or updated by id; review states
are never touched. Explicit kanji "order" values are reserved first; kanji
cards without one take the lowest free order numbers in file order.
"""

import json
import logging

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from flashcards.learning import KANJI_DECK_ID
from flashcards.models import Card, Deck, Group

logger = logging.getLogger(__name__)

CARD_TEXT_FIELDS = ('romaji', 'meaning', 'onyomi', 'kunyomi')


class Command(BaseCommand):
    help = 'Load decks, groups and cards from a JSON catalog file'

    def add_arguments(self, parser):
        parser.add_argument('path', help='Path to the JSON catalog file')
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete the existing catalog before loading (review states are kept)',
        )

    def handle(self, *args, **options):
        path = options['path']
        try:
            with open(path, encoding='utf-8') as handle:
                data = json.load(handle)
        except OSError as e:
            raise CommandError(f'Cannot read catalog file "{path}": {e}')
        except json.JSONDecodeError as e:
            raise CommandError(f'Invalid JSON in "{path}": {e}')

        decks = data.get('decks') if isinstance(data, dict) else data
        if not isinstance(decks, list):
            raise CommandError('Catalog must be a list of decks or {"decks": [...]}')

        with transaction.atomic():
            if options['clear']:
                Card.objects.all().delete()
                Group.objects.all().delete()
                Deck.objects.all().delete()
            counts = self._load_decks(decks)

        logger.info("Loaded catalog from %s: %s", path, counts)
        self.stdout.write(self.style.SUCCESS(
            f"Loaded {counts['decks']} decks, {counts['groups']} groups and {counts['cards']} cards"
        ))

    def _explicit_kanji_orders(self, decks):
        orders = set()
        for deck_data in decks:
            if deck_data.get('id') != KANJI_DECK_ID:
                continue
            for group_data in deck_data.get('groups', []):
                for card_data in group_data.get('cards', []):
                    order = card_data.get('order')
                    if not isinstance(order, int):
                        continue
                    if order in orders:
                        raise CommandError(f'Duplicate kanji order {order} (card "{card_data.get("id")}")')
                    orders.add(order)
        return orders

    def _load_decks(self, decks):
        counts = {'decks': 0, 'groups': 0, 'cards': 0}
        taken_orders = self._explicit_kanji_orders(decks)
        kanji_order = 0

        for deck_data in decks:
            deck_id = deck_data.get('id')
            if not deck_id:
                raise CommandError('Every deck needs an "id"')
            deck, _ = Deck.objects.update_or_create(
                id=deck_id,
                defaults={'label': deck_data.get('label', deck_id)},
            )
            counts['decks'] += 1

            for group_data in deck_data.get('groups', []):
                key = group_data.get('id')
                if not key:
                    raise CommandError(f'Every group in deck "{deck_id}" needs an "id"')
                group, _ = Group.objects.update_or_create(
                    id=Group.make_id(deck_id, key),
                    defaults={
                        'key': key,
                        'label': group_data.get('label', key),
                        'deck': deck,
                    },
                )
                counts['groups'] += 1

                for card_data in group_data.get('cards', []):
                    if 'id' not in card_data or 'script' not in card_data:
                        logger.warning("Skipping card without id/script in group %s", group.id)
                        continue

                    order = None
                    if deck_id == KANJI_DECK_ID:
                        if isinstance(card_data.get('order'), int):
                            order = card_data['order']
                        else:
                            while kanji_order in taken_orders:
                                kanji_order += 1
                            order = kanji_order
                            taken_orders.add(order)

                    defaults = {
                        field: card_data.get(field) or ''
                        for field in CARD_TEXT_FIELDS
                    }
                    defaults.update({
                        'deck': deck,
                        'group': group,
                        'group_key': key,
                        'script': card_data['script'],
                        'level': key if deck_id == KANJI_DECK_ID else '',
                        'order': order,
                    })
                    Card.objects.update_or_create(id=card_data['id'], defaults=defaults)
                    counts['cards'] += 1

        return counts
