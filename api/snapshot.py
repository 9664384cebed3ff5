"""Conversion of table state into wire snapshots."""

from core.cards import Card
from core.game import BlackjackTable, Phase
from core.hand import score

from api.schemas import CardResponse, DeckCardResponse, PlayerResponse, TableStateResponse

HIDDEN_CARD = CardResponse(rank="?", suit="?", color=None, hidden=True)


def card_response(card: Card) -> CardResponse:
    return CardResponse(rank=str(card.rank), suit=str(card.suit), color=str(card.color))


def table_state_response(table: BlackjackTable) -> TableStateResponse:
    """
    Build the snapshot every viewer receives.

    While players are still acting the dealer's hole card is hidden and the
    dealer score counts the up card only.
    """
    hide_hole_card = table.phase is Phase.PLAYER_TURN

    dealer_cards = []
    for i, card in enumerate(table.dealer_hand):
        if hide_hole_card and i == 1:
            dealer_cards.append(HIDDEN_CARD)
        else:
            dealer_cards.append(card_response(card))

    if hide_hole_card:
        dealer_score = score(table.dealer_hand[:1])
    else:
        dealer_score = table.dealer_score

    players = {
        pid: PlayerResponse(
            name=p.display_name,
            hand=[card_response(c) for c in p.hand],
            score=p.score,
            bet=p.current_bet,
            balance=p.balance,
            standing=p.standing,
            busted=p.busted,
            result=p.result.value,
        )
        for pid, p in table.players.items()
    }

    return TableStateResponse(
        phase=table.phase.value,
        dealer_cards=dealer_cards,
        dealer_score=dealer_score,
        players=players,
        current_player_id=table.current_player_id,
        cards_remaining=table.deck.cards_remaining,
    )


def table_state_to_dict(table: BlackjackTable) -> dict:
    """Snapshot as a JSON-ready dict with camelCase keys."""
    return table_state_response(table).model_dump(by_alias=True)


def deck_listing_to_dicts(cards: list[Card]) -> list[dict]:
    """Number the remaining deck from 1, next card to be drawn first."""
    return [
        DeckCardResponse(index=i, **card_response(card).model_dump()).model_dump(by_alias=True)
        for i, card in enumerate(cards, start=1)
    ]
