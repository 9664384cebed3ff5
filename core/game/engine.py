"""Blackjack table engine with round state machine."""

import logging
from collections import deque
from random import Random
from typing import Callable

from transitions import Machine

from core.admin import AdminGate
from core.cards import DEFAULT_LOW_WATER_MARK, Card, Deck
from core.errors import (
    InsufficientBalance,
    InvalidAction,
    InvalidBetAmount,
    InvalidCommandForPhase,
    NotYourTurn,
    Unauthorized,
    UnknownPlayer,
)
from core.game.events import EventEmitter, EventType, GameEvent
from core.game.ledger import PlayerLedgerEntry, RoundResult
from core.game.state import Phase
from core.hand import BLACKJACK, describe, is_natural_blackjack, score

logger = logging.getLogger(__name__)

DEALER = "dealer"
DEALER_STANDS_ON = 17
DEFAULT_STARTING_BALANCE = 100

# Phases in which the deck may be replaced without touching live hands
_IDLE_PHASES = (Phase.WAITING, Phase.BETTING, Phase.SETTLED)


class BlackjackTable:
    """
    A single shared blackjack table driven by a state machine.

    This is the core game logic, completely transport-agnostic. Every
    command either completes and emits events, or raises a ``TableError``
    without changing anything.
    """

    # State machine states
    STATES = [p.value for p in Phase]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "open_betting", "source": "waiting", "dest": "betting"},
        {"trigger": "collect_bets", "source": "betting", "dest": "dealing"},
        {"trigger": "start_turns", "source": "dealing", "dest": "playerTurn"},
        {"trigger": "settle_naturals", "source": "dealing", "dest": "settled"},
        {"trigger": "dealer_up", "source": "playerTurn", "dest": "dealerTurn"},
        {"trigger": "dealer_done", "source": "dealerTurn", "dest": "settled"},
        {"trigger": "new_round", "source": "settled", "dest": "betting"},
        {
            "trigger": "restart_betting",
            "source": ["betting", "dealing", "playerTurn", "dealerTurn", "settled"],
            "dest": "betting",
        },
        {
            "trigger": "close_table",
            "source": ["betting", "dealing", "playerTurn", "dealerTurn", "settled"],
            "dest": "waiting",
        },
    ]

    def __init__(
        self,
        starting_balance: int = DEFAULT_STARTING_BALANCE,
        low_water_mark: int = DEFAULT_LOW_WATER_MARK,
        admin_gate: AdminGate | None = None,
        rng: Random | None = None,
    ) -> None:
        """
        Initialize an empty table.

        Args:
            starting_balance: Balance given to each joining player
            low_water_mark: Deck size below which a draw reshuffles first
            admin_gate: Authorization for admin commands (admin commands
                are always rejected without one)
            rng: Random number generator for reproducible shuffles
        """
        if starting_balance < 1:
            raise ValueError("Starting balance must be positive")

        self.starting_balance = starting_balance
        self.admin_gate = admin_gate
        self.deck = Deck(low_water_mark=low_water_mark, rng=rng)
        self.deck.shuffle()

        self.players: dict[str, PlayerLedgerEntry] = {}
        self.dealer_hand: list[Card] = []
        self.turn_queue: deque[str] = deque()
        self._round_players: list[str] = []
        self.events = EventEmitter()

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial="waiting",
            auto_transitions=False,
            model_attribute="_machine_state",
            after_state_change="_on_phase_change",
        )

    @property
    def phase(self) -> Phase:
        """Get current phase as enum."""
        return Phase(self._machine_state)  # type: ignore[attr-defined]

    @property
    def current_player_id(self) -> str | None:
        """Return the id of the player whose turn it is, if any."""
        if self.phase is Phase.PLAYER_TURN and self.turn_queue:
            return self.turn_queue[0]
        return None

    @property
    def dealer_score(self) -> int:
        return score(self.dealer_hand)

    @property
    def round_players(self) -> list[str]:
        """Players holding a stake in the current round, in join order."""
        return list(self._round_players)

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to table events."""
        self.events.subscribe(handler, event_type)

    def get_player(self, player_id: str) -> PlayerLedgerEntry:
        """
        Look up a seated player.

        Raises:
            UnknownPlayer: If the id never joined or has been removed
        """
        player = self.players.get(player_id)
        if player is None:
            raise UnknownPlayer()
        return player

    # ------------------------------------------------------------------
    # Seating
    # ------------------------------------------------------------------

    def join(self, player_id: str, name: str) -> PlayerLedgerEntry:
        """
        Seat a player, or rename one who is already seated.

        A player joining after bets have closed sits out until the next round.
        """
        name = name.strip()
        if not name:
            raise InvalidAction("Name must not be empty")

        existing = self.players.get(player_id)
        if existing is not None:
            existing.display_name = name
            self.events.emit_new(EventType.PLAYER_RENAMED, player_id=player_id, name=name)
            return existing

        player = PlayerLedgerEntry(
            player_id=player_id,
            display_name=name,
            balance=self.starting_balance,
        )
        self.players[player_id] = player
        logger.info("%s joined (%s)", name, player_id)
        self.events.emit_new(EventType.PLAYER_JOINED, player_id=player_id, name=name)
        self._balance_changed(player)

        if self.phase is Phase.WAITING:
            self.open_betting()
        return player

    def leave(self, player_id: str) -> None:
        """Remove a player from the table, forfeiting any escrowed bet."""
        self.get_player(player_id)
        self._remove_player(player_id, reason="left")

    # ------------------------------------------------------------------
    # Betting and dealing
    # ------------------------------------------------------------------

    def place_bet(self, player_id: str, amount: int) -> None:
        """
        Escrow a bet for the current round.

        Deals automatically once every player holding a balance has bet.
        """
        player = self.get_player(player_id)

        if self.phase is not Phase.BETTING:
            raise InvalidCommandForPhase(f"Cannot bet during {self.phase}")
        if player.has_bet:
            raise InvalidAction("Bet already placed this round")
        if amount < 1 or amount > player.balance:
            raise InvalidBetAmount(f"Bet must be between 1 and {player.balance}")

        player.escrow(amount)
        logger.info("%s bet %d", player.display_name, amount)
        self.events.emit_new(EventType.BET_PLACED, player_id=player_id, amount=amount)
        self._balance_changed(player)

        self._deal_if_ready()

    @property
    def all_bets_in(self) -> bool:
        """Check if every player able to bet has done so."""
        if not any(p.has_bet for p in self.players.values()):
            return False
        return all(p.has_bet or p.balance == 0 for p in self.players.values())

    def _deal_if_ready(self) -> None:
        if self.phase is Phase.BETTING and self.all_bets_in:
            self._deal()

    def _deal(self) -> None:
        """Deal two cards to each betting player and the dealer."""
        self.collect_bets()

        self._round_players = [pid for pid, p in self.players.items() if p.has_bet]
        self.dealer_hand = []
        self.events.emit_new(EventType.ROUND_STARTED, players=self.round_players)

        # Deal: each player, then dealer, twice
        for _ in range(2):
            for pid in self._round_players:
                self._deal_card(self.players[pid].hand, pid)
            self._deal_card(self.dealer_hand, DEALER)

        any_natural = False
        for pid in self._round_players:
            player = self.players[pid]
            if is_natural_blackjack(player.hand):
                player.result = RoundResult.BLACKJACK
                player.standing = True
                any_natural = True
                self.events.emit_new(EventType.PLAYER_BLACKJACK, player_id=pid)

        if is_natural_blackjack(self.dealer_hand):
            any_natural = True
            self.events.emit_new(EventType.DEALER_BLACKJACK)

        if any_natural:
            self._settle()
            self.settle_naturals()
            return

        self.turn_queue = deque(self._round_players)
        self.start_turns()
        self._announce_turn()

    def _deal_card(self, hand: list[Card], holder: str) -> Card:
        """Draw a card into a hand."""
        if self.deck.needs_shuffle:
            self.events.emit_new(EventType.DECK_SHUFFLED, reason="low")
        card = self.deck.draw()
        hand.append(card)
        logger.debug("Dealt %s to %s", card, holder)
        self.events.emit_new(
            EventType.CARD_DEALT,
            card=str(card),
            holder=holder,
            hand_value=score(hand),
        )
        return card

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    def _require_turn(self, player_id: str) -> PlayerLedgerEntry:
        """Return the acting player, checking phase and turn order."""
        player = self.get_player(player_id)
        if self.phase is not Phase.PLAYER_TURN:
            raise InvalidCommandForPhase(f"No turns are being played during {self.phase}")
        if self.current_player_id != player_id:
            raise NotYourTurn()
        return player

    def hit(self, player_id: str) -> Card:
        """Player takes another card."""
        player = self._require_turn(player_id)

        card = self._deal_card(player.hand, player_id)
        self.events.emit_new(EventType.PLAYER_HIT, player_id=player_id, hand_value=player.score)
        self._resolve_draw(player)

        if player.is_done:
            self._advance_turn()
        return card

    def stand(self, player_id: str) -> None:
        """Player keeps their current hand."""
        player = self._require_turn(player_id)

        player.standing = True
        self.events.emit_new(EventType.PLAYER_STAND, player_id=player_id, hand_value=player.score)
        self._advance_turn()

    def double(self, player_id: str) -> Card:
        """Player doubles the bet, takes exactly one card and ends the turn."""
        player = self._require_turn(player_id)

        if len(player.hand) != 2:
            raise InvalidAction("Can only double on the first two cards")
        if player.balance < player.current_bet:
            raise InsufficientBalance(
                f"Doubling needs {player.current_bet}, balance is {player.balance}"
            )

        player.escrow(player.current_bet)
        self._balance_changed(player)

        card = self._deal_card(player.hand, player_id)
        self.events.emit_new(
            EventType.PLAYER_DOUBLE,
            player_id=player_id,
            hand_value=player.score,
            new_bet=player.current_bet,
        )
        self._resolve_draw(player)
        if not player.busted:
            player.standing = True

        self._advance_turn()
        return card

    def _resolve_draw(self, player: PlayerLedgerEntry) -> None:
        """Apply bust and 21 after a draw."""
        if player.score > BLACKJACK:
            player.busted = True
            player.result = RoundResult.BUST
            logger.info("%s busts: %s", player.display_name, describe(player.hand))
            self.events.emit_new(EventType.PLAYER_BUSTS, player_id=player.player_id)
        elif player.score == BLACKJACK:
            player.standing = True

    def _advance_turn(self) -> None:
        """Pop the finished player; play the dealer when nobody is left."""
        if self.turn_queue:
            self.turn_queue.popleft()
        while self.turn_queue and self.players[self.turn_queue[0]].is_done:
            self.turn_queue.popleft()

        if self.turn_queue:
            self._announce_turn()
            return

        self.dealer_up()
        self._play_dealer()
        self._settle()
        self.dealer_done()

    def _announce_turn(self) -> None:
        self.events.emit_new(EventType.TURN_STARTED, player_id=self.turn_queue[0])

    # ------------------------------------------------------------------
    # Dealer and settlement
    # ------------------------------------------------------------------

    def _play_dealer(self) -> None:
        """Dealer draws to 17, standing on soft 17."""
        while self.dealer_score < DEALER_STANDS_ON:
            self._deal_card(self.dealer_hand, DEALER)
            self.events.emit_new(EventType.DEALER_HITS, hand_value=self.dealer_score)

        if self.dealer_score > BLACKJACK:
            self.events.emit_new(EventType.DEALER_BUSTS, hand_value=self.dealer_score)
        else:
            self.events.emit_new(EventType.DEALER_STANDS, hand_value=self.dealer_score)

    def _settle(self) -> None:
        """Pay out every player who had a stake in this round."""
        dealer_score = self.dealer_score
        dealer_natural = is_natural_blackjack(self.dealer_hand)

        for pid in self._round_players:
            player = self.players[pid]
            bet = player.current_bet
            payout = 0

            if player.result is RoundResult.BLACKJACK:
                if dealer_natural:
                    player.result = RoundResult.PUSH
                    payout = bet
                else:
                    payout = bet * 5 // 2
            elif player.busted:
                player.result = RoundResult.BUST
            elif dealer_score > BLACKJACK or player.score > dealer_score:
                player.result = RoundResult.WIN
                payout = bet * 2
            elif player.score < dealer_score:
                player.result = RoundResult.LOSE
            else:
                player.result = RoundResult.PUSH
                payout = bet

            player.current_bet = 0
            if payout:
                player.credit(payout)
                self._balance_changed(player)

            logger.info(
                "%s %s (bet %d, paid %d, balance %d)",
                player.display_name,
                player.result,
                bet,
                payout,
                player.balance,
            )
            self.events.emit_new(
                EventType.PLAYER_SETTLED,
                player_id=pid,
                result=player.result.value,
                bet=bet,
                payout=payout,
            )

        self.events.emit_new(
            EventType.ROUND_SETTLED,
            dealer_hand=describe(self.dealer_hand),
            dealer_score=dealer_score,
        )

    def next_round(self, player_id: str) -> None:
        """
        Start a fresh round after settlement.

        Players with nothing left are removed; everyone else gets a clean hand.
        """
        self.get_player(player_id)
        if self.phase is not Phase.SETTLED:
            raise InvalidCommandForPhase(f"Round is still in {self.phase}")

        for pid in [pid for pid, p in self.players.items() if p.balance == 0]:
            self._drop(pid, reason="bankrupt")

        self._clear_round()
        if self.deck.needs_shuffle:
            self.deck.shuffle()
            self.events.emit_new(EventType.DECK_SHUFFLED, reason="low")

        if self.players:
            self.new_round()
        else:
            self.close_table()

    def _clear_round(self) -> None:
        for player in self.players.values():
            player.clear_round()
        self.dealer_hand = []
        self.turn_queue.clear()
        self._round_players = []

    # ------------------------------------------------------------------
    # Admin commands
    # ------------------------------------------------------------------

    def _require_admin(self, requester_id: str) -> None:
        if self.admin_gate is None:
            raise Unauthorized("Admin commands are disabled")
        self.admin_gate.require_admin(requester_id)

    def set_admin(self, requester_id: str, password: str) -> None:
        """Grant admin rights to a requester that knows the password."""
        if self.admin_gate is None:
            raise Unauthorized("Admin commands are disabled")
        self.admin_gate.authenticate(requester_id, password)
        self.events.emit_new(EventType.ADMIN_GRANTED, player_id=requester_id)

    def admin_reset(self, requester_id: str) -> None:
        """Restore every balance to the starting stake and force a fresh round."""
        self._require_admin(requester_id)

        self._clear_round()
        for player in self.players.values():
            player.balance = self.starting_balance
            self._balance_changed(player)
        self.deck.shuffle()

        logger.info("Table reset by admin %s", requester_id)
        self.events.emit_new(EventType.TABLE_RESET, by=requester_id)
        self.events.emit_new(EventType.DECK_SHUFFLED, reason="reset")

        if self.players:
            self.restart_betting()
        elif self.phase is not Phase.WAITING:
            self.close_table()

    def admin_shuffle(self, requester_id: str) -> None:
        """Replace the deck with a freshly shuffled one between rounds."""
        self._require_admin(requester_id)
        if self.phase not in _IDLE_PHASES:
            raise InvalidCommandForPhase("Cannot shuffle while cards are in play")

        self.deck.shuffle()
        logger.info("Deck shuffled by admin %s", requester_id)
        self.events.emit_new(EventType.DECK_SHUFFLED, reason="admin")

    def admin_remove_player(self, requester_id: str, target_id: str) -> None:
        """Remove another player; their escrowed bet is forfeited."""
        self._require_admin(requester_id)
        self.get_player(target_id)
        self._remove_player(target_id, reason="removed")

    def admin_deck_listing(self, requester_id: str) -> list[Card]:
        """Return the remaining deck, next card to be drawn first."""
        self._require_admin(requester_id)
        return list(reversed(list(self.deck)))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _remove_player(self, player_id: str, reason: str) -> None:
        """Take a player out mid-round and keep the round moving."""
        was_current = self.current_player_id == player_id
        self._drop(player_id, reason=reason)

        if player_id in self._round_players:
            self._round_players.remove(player_id)
        if player_id in self.turn_queue:
            self.turn_queue.remove(player_id)

        if not self.players:
            self._clear_round()
            if self.phase is not Phase.WAITING:
                self.close_table()
            return

        if self.phase is Phase.BETTING:
            self._deal_if_ready()
        elif self.phase is Phase.PLAYER_TURN:
            if not self.turn_queue:
                self._advance_turn()
            elif was_current:
                self._announce_turn()

    def _drop(self, player_id: str, reason: str) -> None:
        player = self.players.pop(player_id)
        forfeited = player.current_bet
        if forfeited:
            player.result = RoundResult.FORFEIT
            player.current_bet = 0

        logger.info("%s %s the table (forfeited %d)", player.display_name, reason, forfeited)
        event_type = EventType.PLAYER_LEFT if reason == "left" else EventType.PLAYER_REMOVED
        self.events.emit_new(
            event_type,
            player_id=player_id,
            name=player.display_name,
            reason=reason,
            forfeited=forfeited,
        )

    def _balance_changed(self, player: PlayerLedgerEntry) -> None:
        self.events.emit_new(
            EventType.BALANCE_CHANGED,
            player_id=player.player_id,
            balance=player.balance,
        )

    def _on_phase_change(self) -> None:
        logger.debug("Phase -> %s", self.phase)
        self.events.emit_new(EventType.PHASE_CHANGED, phase=self.phase.value)
