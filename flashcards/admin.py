from django.contrib import admin
from .models import Card, Deck, Group, LearningProgress, ReviewLog, ReviewState


class GroupInline(admin.TabularInline):
    model = Group
    extra = 0
    fields = ['id', 'key', 'label']


@admin.register(Deck)
class DeckAdmin(admin.ModelAdmin):
    list_display = ['id', 'label', 'card_count']
    search_fields = ['id', 'label']
    inlines = [GroupInline]

    def card_count(self, obj):
        return obj.cards.count()
    card_count.short_description = 'Cards'


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ['id', 'deck', 'key', 'label']
    list_filter = ['deck']


@admin.register(Card)
class CardAdmin(admin.ModelAdmin):
    list_display = ['id', 'script', 'deck', 'group_key', 'level', 'order', 'meaning']
    list_filter = ['deck', 'level']
    search_fields = ['id', 'script', 'meaning', 'romaji']


@admin.register(ReviewState)
class ReviewStateAdmin(admin.ModelAdmin):
    list_display = ['card_id', 'user', 'deck_id', 'due_at', 'learning_step',
                    'interval_days', 'ease_factor', 'lapses']
    list_filter = ['deck_id', 'learning_step']
    search_fields = ['card_id', 'user__username']
    readonly_fields = ['due_at', 'ease_factor', 'interval_days', 'learning_step', 'reps',
                       'lapses', 'seen', 'correct', 'wrong', 'last_correct',
                       'last_answer_ms', 'avg_answer_ms', 'last_answered_at',
                       'last_reviewed_at']


@admin.register(ReviewLog)
class ReviewLogAdmin(admin.ModelAdmin):
    list_display = ['card_id', 'user', 'quality', 'interval_before', 'interval_after', 'reviewed_at']
    list_filter = ['quality', 'reviewed_at']
    readonly_fields = ['user', 'card_id', 'quality', 'answer_ms', 'ease_factor_before',
                       'ease_factor_after', 'interval_before', 'interval_after', 'reviewed_at']


@admin.register(LearningProgress)
class LearningProgressAdmin(admin.ModelAdmin):
    list_display = ['user', 'next_order', 'updated_at']
