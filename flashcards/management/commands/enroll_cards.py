"""Enroll catalog cards for review for one user."""

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError

from flashcards import services


class Command(BaseCommand):
    help = 'Create review states for a user (existing ones are left alone)'

    def add_arguments(self, parser):
        parser.add_argument(
            'username',
            help='User to enroll the cards for',
        )
        parser.add_argument(
            '--deck',
            default=None,
            help='Only enroll cards of this deck',
        )
        parser.add_argument(
            '--group',
            default=None,
            help='Only enroll cards of this group (requires --deck)',
        )

    def handle(self, *args, **options):
        username = options['username']
        deck_id = options['deck']
        group_key = options['group']

        try:
            user = User.objects.get(username=username)
        except User.DoesNotExist:
            raise CommandError(f'User "{username}" does not exist')

        if group_key:
            if not deck_id:
                raise CommandError('--group requires --deck')
            created = services.enroll_group(user, deck_id, group_key)
        else:
            created = services.seed_catalog(user, deck_id=deck_id)

        self.stdout.write(self.style.SUCCESS(
            f'Enrolled {created} new card(s) for {username}'
        ))
