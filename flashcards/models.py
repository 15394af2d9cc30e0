from django.db import models
from django.contrib.auth.models import User
from django.utils import timezone

from . import srs


class Deck(models.Model):
    """A top-level collection of cards, e.g. kanji or hiragana."""
    id = models.SlugField(primary_key=True, max_length=50)
    label = models.CharField(max_length=200)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return self.label


class Group(models.Model):
    """A named group inside a deck (for kanji, a JLPT level)."""
    id = models.CharField(primary_key=True, max_length=100)  # "<deck>-<key>"
    key = models.CharField(max_length=50)
    label = models.CharField(max_length=200)
    deck = models.ForeignKey(Deck, on_delete=models.CASCADE, related_name='groups')

    class Meta:
        ordering = ['deck', 'id']

    def __str__(self):
        return f"{self.deck_id}/{self.label}"

    @staticmethod
    def make_id(deck_id, key):
        return f"{deck_id}-{key}"


class Card(models.Model):
    """A catalog card. Kanji cards carry a JLPT level and curriculum order."""
    id = models.CharField(primary_key=True, max_length=100)
    deck = models.ForeignKey(Deck, on_delete=models.CASCADE, related_name='cards')
    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name='cards')
    group_key = models.CharField(max_length=50)
    script = models.CharField(max_length=50)
    romaji = models.CharField(max_length=200, blank=True, default='')
    meaning = models.CharField(max_length=500, blank=True, default='')
    onyomi = models.CharField(max_length=200, blank=True, default='')
    kunyomi = models.CharField(max_length=200, blank=True, default='')
    level = models.CharField(max_length=10, blank=True, default='')
    order = models.IntegerField(null=True, blank=True)

    class Meta:
        ordering = ['deck', 'order', 'id']
        indexes = [
            models.Index(fields=['deck', 'order'], name='card_deck_order_idx'),
        ]

    def __str__(self):
        return f"{self.script} ({self.id})"


class ReviewState(models.Model):
    """
    Spaced repetition state of one card for one user.

    card_id is a plain key into the catalog rather than a foreign key: a card
    removed from the catalog leaves its review state behind as an orphan,
    which the due-set selector skips.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='review_states')
    card_id = models.CharField(max_length=100)
    deck_id = models.CharField(max_length=50)
    group_key = models.CharField(max_length=50)

    # Scheduling fields
    due_at = models.DateTimeField(default=timezone.now)
    ease_factor = models.FloatField(default=srs.DEFAULT_EASE_FACTOR)
    interval_days = models.IntegerField(default=0)
    learning_step = models.IntegerField(default=0)
    reps = models.IntegerField(default=0)  # Successful graduated reviews in a row
    lapses = models.IntegerField(default=0)

    # Answer statistics
    seen = models.IntegerField(default=0)
    correct = models.IntegerField(default=0)
    wrong = models.IntegerField(default=0)
    last_correct = models.BooleanField(default=False)
    last_answer_ms = models.IntegerField(default=0)
    avg_answer_ms = models.IntegerField(default=0)
    last_answered_at = models.DateTimeField(null=True, blank=True)
    last_reviewed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['due_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['user', 'card_id'], name='unique_review_state_per_user_card'),
        ]
        indexes = [
            models.Index(fields=['user', 'due_at'], name='review_user_due_idx'),
            models.Index(fields=['user', 'deck_id', 'due_at'], name='review_user_deck_due_idx'),
        ]

    def __str__(self):
        return f"{self.card_id} for {self.user_id}"

    @classmethod
    def for_card(cls, user, card, now=None):
        """Build (without saving) a fresh review state for a catalog card."""
        return cls(
            user=user,
            card_id=card.pk,
            deck_id=card.deck_id,
            group_key=card.group_key,
            due_at=now or timezone.now(),
        )

    @property
    def is_graduated(self):
        return self.learning_step >= len(srs.LEARNING_STEPS)

    @property
    def is_mature(self):
        return self.is_graduated and self.interval_days >= srs.MATURE_INTERVAL_DAYS

    def is_due(self, now=None):
        return self.due_at <= (now or timezone.now())

    def to_state(self):
        """Snapshot the scheduling fields as an srs.SchedulingState."""
        return srs.SchedulingState(
            due_at=self.due_at,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            learning_step=self.learning_step,
            reps=self.reps,
            lapses=self.lapses,
            seen=self.seen,
            correct=self.correct,
            wrong=self.wrong,
            last_correct=self.last_correct,
            last_answer_ms=self.last_answer_ms,
            avg_answer_ms=self.avg_answer_ms,
            last_answered_at=self.last_answered_at,
            last_reviewed_at=self.last_reviewed_at,
        )

    def apply_state(self, state):
        for field in srs.SchedulingState.__dataclass_fields__:
            setattr(self, field, getattr(state, field))

    def record_answer(self, quality, answer_ms=0, now=None):
        """
        Apply one answer to this review state and save it.

        Callers must hold a row lock (see services.submit_answer) so that two
        answers for the same card never start from the same stale state.

        Returns the ReviewLog entry created.
        """
        ease_before = self.ease_factor
        interval_before = self.interval_days

        result = srs.apply_answer(
            self.to_state(),
            quality=quality,
            answer_ms=answer_ms,
            now=now or timezone.now(),
        )
        self.apply_state(result)
        self.save()

        return ReviewLog.objects.create(
            user_id=self.user_id,
            card_id=self.card_id,
            quality=quality,
            answer_ms=result.last_answer_ms,
            ease_factor_before=ease_before,
            ease_factor_after=result.ease_factor,
            interval_before=interval_before,
            interval_after=result.interval_days,
        )


class ReviewLog(models.Model):
    """Log of answers for analytics."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='review_logs')
    card_id = models.CharField(max_length=100)
    quality = models.IntegerField()
    answer_ms = models.IntegerField(default=0)
    ease_factor_before = models.FloatField()
    ease_factor_after = models.FloatField()
    interval_before = models.IntegerField()
    interval_after = models.IntegerField()
    reviewed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-reviewed_at']


class LearningProgress(models.Model):
    """Per-user cursor into the kanji curriculum."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='learning_progress')
    next_order = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'Learning progress'

    def __str__(self):
        return f"Learning progress for {self.user.username}"
