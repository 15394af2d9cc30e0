import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Deck',
            fields=[
                ('id', models.SlugField(primary_key=True, serialize=False)),
                ('label', models.CharField(max_length=200)),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='Group',
            fields=[
                ('id', models.CharField(max_length=100, primary_key=True, serialize=False)),
                ('key', models.CharField(max_length=50)),
                ('label', models.CharField(max_length=200)),
                ('deck', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='groups', to='flashcards.deck')),
            ],
            options={
                'ordering': ['deck', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Card',
            fields=[
                ('id', models.CharField(max_length=100, primary_key=True, serialize=False)),
                ('group_key', models.CharField(max_length=50)),
                ('script', models.CharField(max_length=50)),
                ('romaji', models.CharField(blank=True, default='', max_length=200)),
                ('meaning', models.CharField(blank=True, default='', max_length=500)),
                ('onyomi', models.CharField(blank=True, default='', max_length=200)),
                ('kunyomi', models.CharField(blank=True, default='', max_length=200)),
                ('level', models.CharField(blank=True, default='', max_length=10)),
                ('order', models.IntegerField(blank=True, null=True)),
                ('deck', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cards', to='flashcards.deck')),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='cards', to='flashcards.group')),
            ],
            options={
                'ordering': ['deck', 'order', 'id'],
                'indexes': [models.Index(fields=['deck', 'order'], name='card_deck_order_idx')],
            },
        ),
        migrations.CreateModel(
            name='ReviewState',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('card_id', models.CharField(max_length=100)),
                ('deck_id', models.CharField(max_length=50)),
                ('group_key', models.CharField(max_length=50)),
                ('due_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('ease_factor', models.FloatField(default=2.5)),
                ('interval_days', models.IntegerField(default=0)),
                ('learning_step', models.IntegerField(default=0)),
                ('reps', models.IntegerField(default=0)),
                ('lapses', models.IntegerField(default=0)),
                ('seen', models.IntegerField(default=0)),
                ('correct', models.IntegerField(default=0)),
                ('wrong', models.IntegerField(default=0)),
                ('last_correct', models.BooleanField(default=False)),
                ('last_answer_ms', models.IntegerField(default=0)),
                ('avg_answer_ms', models.IntegerField(default=0)),
                ('last_answered_at', models.DateTimeField(blank=True, null=True)),
                ('last_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_states', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['due_at', 'id'],
                'indexes': [
                    models.Index(fields=['user', 'due_at'], name='review_user_due_idx'),
                    models.Index(fields=['user', 'deck_id', 'due_at'], name='review_user_deck_due_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'card_id'), name='unique_review_state_per_user_card'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReviewLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('card_id', models.CharField(max_length=100)),
                ('quality', models.IntegerField()),
                ('answer_ms', models.IntegerField(default=0)),
                ('ease_factor_before', models.FloatField()),
                ('ease_factor_after', models.FloatField()),
                ('interval_before', models.IntegerField()),
                ('interval_after', models.IntegerField()),
                ('reviewed_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='review_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-reviewed_at'],
            },
        ),
        migrations.CreateModel(
            name='LearningProgress',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('next_order', models.IntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='learning_progress', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'Learning progress',
            },
        ),
    ]
