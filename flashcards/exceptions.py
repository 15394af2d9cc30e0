"""Errors raised by the review services and translated to HTTP by the views."""


class CardNotFound(Exception):
    """The card is not in the catalog."""

    def __init__(self, card_id):
        self.card_id = card_id
        super().__init__(f"card not found: {card_id}")


class InvalidInput(ValueError):
    """A request was rejected before touching the store."""
