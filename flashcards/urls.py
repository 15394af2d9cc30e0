from django.urls import path
from . import views

urlpatterns = [
    # Catalog
    path('api/decks/', views.deck_list, name='deck_list'),

    # Review
    path('api/review/', views.review_list, name='review_list'),
    path('api/review/due/', views.review_due, name='review_due'),
    path('api/review/answer/', views.review_answer, name='review_answer'),
    path('api/review/seed/', views.review_seed, name='review_seed'),
    path('api/review/add-group/', views.review_add_group, name='review_add_group'),
    path('api/review/add-cards/', views.review_add_cards, name='review_add_cards'),

    # Learning
    path('api/kanji/learn/', views.kanji_learn, name='kanji_learn'),
    path('api/kanji/learned/', views.kanji_learned, name='kanji_learned'),
    path('api/kanji/lifecycle/', views.kanji_lifecycle, name='kanji_lifecycle'),
    path('api/kanji/<str:card_id>/related/', views.kanji_related, name='kanji_related'),

    # Progress
    path('api/progress/reset/', views.progress_reset, name='progress_reset'),

    # Health check
    path('health/', views.health_check, name='health_check'),
]
