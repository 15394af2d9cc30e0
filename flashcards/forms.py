from django import forms

from . import srs
from .exceptions import InvalidInput


class JSONPayloadForm(forms.Form):
    """
    Form bound to a decoded JSON request body.

    JSON clients send camelCase keys; `json_fields` maps them onto the
    form's field names.
    """
    json_fields = {}

    @classmethod
    def from_payload(cls, payload):
        data = {
            field: payload.get(key)
            for key, field in cls.json_fields.items()
            if payload.get(key) is not None
        }
        return cls(data=data)

    def cleaned_or_raise(self):
        """Return cleaned_data, or raise InvalidInput with the first error."""
        if not self.is_valid():
            field, errors = next(iter(self.errors.items()))
            raise InvalidInput(f"{field}: {errors[0]}")
        return self.cleaned_data


class AnswerForm(JSONPayloadForm):
    """Validates a submitted answer."""
    json_fields = {
        'cardId': 'card_id',
        'rating': 'rating',
        'isCorrect': 'is_correct',
        'answerMs': 'answer_ms',
    }

    card_id = forms.CharField(max_length=100)
    rating = forms.TypedChoiceField(
        choices=[
            (srs.QUALITY_AGAIN, 'Again'),
            (srs.QUALITY_HARD, 'Hard'),
            (srs.QUALITY_GOOD, 'Good'),
            (srs.QUALITY_EASY, 'Easy'),
        ],
        coerce=int,
        required=False,
        empty_value=None,
    )
    is_correct = forms.BooleanField(required=False)
    answer_ms = forms.IntegerField(required=False, min_value=0)


class AddGroupForm(JSONPayloadForm):
    """Validates a request to enroll a whole group."""
    json_fields = {
        'deckId': 'deck_id',
        'groupId': 'group_id',
    }

    deck_id = forms.CharField(max_length=50)
    group_id = forms.CharField(max_length=50)


class DueQueryForm(JSONPayloadForm):
    """Validates due-set query parameters."""
    json_fields = {
        'deck': 'deck',
        'deckId': 'deck',
        'limit': 'limit',
    }

    deck = forms.CharField(max_length=50, required=False)
    limit = forms.IntegerField(required=False)
