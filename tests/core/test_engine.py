"""Tests for the blackjack table engine."""

import pytest
from random import Random

from core.admin import AdminGate
from core.cards import Card
from core.errors import (
    InsufficientBalance,
    InvalidAction,
    InvalidBetAmount,
    InvalidCommandForPhase,
    NotYourTurn,
    Unauthorized,
    UnknownPlayer,
)
from core.game import BlackjackTable, EventType, Phase, RoundResult
from core.game.state import is_valid_transition


def phase_history(table):
    return [
        e.data["phase"]
        for e in table.events.history
        if e.event_type == EventType.PHASE_CHANGED
    ]


def events_of(table, event_type):
    return [e for e in table.events.history if e.event_type == event_type]


class TestStateMachine:
    """Tests for the transition table itself."""

    def test_machine_transitions_are_valid(self):
        """Test every machine transition is listed as a valid phase change."""
        for transition in BlackjackTable.TRANSITIONS:
            sources = transition["source"]
            if isinstance(sources, str):
                sources = [sources]
            for source in sources:
                assert is_valid_transition(Phase(source), Phase(transition["dest"]))

    def test_new_table_is_waiting(self, table):
        assert table.phase is Phase.WAITING
        assert table.current_player_id is None
        assert len(table.deck) == 52


class TestJoin:
    """Tests for seating players."""

    def test_first_join_opens_betting(self, table):
        player = table.join("a", "Ann")

        assert table.phase is Phase.BETTING
        assert player.balance == 100
        assert player.hand == []
        assert player.result is RoundResult.NONE
        assert phase_history(table) == ["betting"]

    def test_join_emits_balance(self, table):
        table.join("a", "Ann")
        balances = events_of(table, EventType.BALANCE_CHANGED)
        assert balances[-1].data == {"player_id": "a", "balance": 100}

    def test_rejoin_renames(self, table):
        table.join("a", "Ann")
        table.join("a", "Annie")

        assert len(table.players) == 1
        assert table.players["a"].display_name == "Annie"

    def test_empty_name_rejected(self, table):
        with pytest.raises(InvalidAction):
            table.join("a", "   ")
        assert table.players == {}
        assert table.phase is Phase.WAITING

    def test_join_mid_round_sits_out(self, table, stack):
        stack(table, "10H", "10S", "8H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.join("b", "Bob")

        assert table.round_players == ["a"]
        table.stand("a")

        assert table.phase is Phase.SETTLED
        assert table.players["b"].result is RoundResult.NONE
        assert table.players["b"].balance == 100


class TestBetting:
    """Tests for bet collection."""

    def test_bet_is_escrowed(self, table):
        table.join("a", "Ann")
        table.join("b", "Bob")
        table.place_bet("a", 10)

        assert table.players["a"].balance == 90
        assert table.players["a"].current_bet == 10
        # Still waiting on Bob
        assert table.phase is Phase.BETTING

    def test_bet_out_of_range_rejected(self, table):
        table.join("a", "Ann")

        with pytest.raises(InvalidBetAmount):
            table.place_bet("a", 0)
        with pytest.raises(InvalidBetAmount):
            table.place_bet("a", 101)

        assert table.players["a"].balance == 100
        assert table.players["a"].current_bet == 0
        assert table.phase is Phase.BETTING

    def test_second_bet_rejected(self, table):
        table.join("a", "Ann")
        table.join("b", "Bob")
        table.place_bet("a", 10)

        with pytest.raises(InvalidAction):
            table.place_bet("a", 10)
        assert table.players["a"].balance == 90

    def test_bet_from_unknown_player_rejected(self, table):
        table.join("a", "Ann")
        with pytest.raises(UnknownPlayer):
            table.place_bet("ghost", 10)

    def test_bet_outside_betting_rejected(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        with pytest.raises(InvalidCommandForPhase):
            table.place_bet("a", 10)

    def test_full_balance_bet_deals(self, table):
        """Test a lone all-in bet passes through dealing straight away."""
        table.join("a", "Ann")
        table.place_bet("a", 100)

        history = phase_history(table)
        assert history[:2] == ["betting", "dealing"]
        assert history[2] in ("playerTurn", "settled")
        assert table.phase in (Phase.PLAYER_TURN, Phase.SETTLED)
        assert len(table.players["a"].hand) == 2
        assert len(table.dealer_hand) == 2

    def test_deal_order_player_then_dealer(self, table, stack):
        stack(table, "2H", "3S", "4H", "5S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        assert table.players["a"].hand == [Card.from_string("2H"), Card.from_string("4H")]
        assert table.dealer_hand == [Card.from_string("3S"), Card.from_string("5S")]


class TestPlayerActions:
    """Tests for hit, stand and double."""

    def test_stand_dealer_busts(self, table, stack):
        """Test bet 10, stand, dealer busts: 100 -> 90 -> 110."""
        stack(table, "10H", "10S", "6H", "6S", "KD")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        assert table.phase is Phase.PLAYER_TURN
        assert table.current_player_id == "a"
        assert table.players["a"].balance == 90

        table.stand("a")

        assert table.phase is Phase.SETTLED
        assert table.dealer_score == 26
        assert table.players["a"].result is RoundResult.WIN
        assert table.players["a"].balance == 110
        assert table.players["a"].current_bet == 0

    def test_push_refunds_bet(self, table, stack):
        stack(table, "10H", "10S", "8H", "8S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.stand("a")

        assert table.players["a"].result is RoundResult.PUSH
        assert table.players["a"].balance == 100

    def test_lower_score_loses(self, table, stack):
        stack(table, "10H", "10S", "7H", "9S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.stand("a")

        assert table.players["a"].result is RoundResult.LOSE
        assert table.players["a"].balance == 90

    def test_hit_keeps_turn(self, table, stack):
        stack(table, "10H", "10S", "2H", "7S", "3C")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        card = table.hit("a")

        assert card == Card.from_string("3C")
        assert table.players["a"].score == 15
        assert table.phase is Phase.PLAYER_TURN
        assert table.current_player_id == "a"

    def test_hit_soft_hand_does_not_bust(self, table, stack):
        stack(table, "AH", "10S", "5H", "7S", "KC")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.hit("a")

        assert table.players["a"].score == 16
        assert not table.players["a"].busted
        assert table.current_player_id == "a"

    def test_hit_to_21_ends_turn(self, table, stack):
        stack(table, "10H", "10S", "5H", "7S", "6C")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.hit("a")

        assert table.players["a"].standing
        assert table.phase is Phase.SETTLED
        assert table.players["a"].result is RoundResult.WIN
        assert table.players["a"].balance == 110

    def test_hit_bust(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S", "KC")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.hit("a")

        player = table.players["a"]
        assert player.busted
        assert player.result is RoundResult.BUST
        assert player.balance == 90
        assert table.phase is Phase.SETTLED

    def test_action_outside_turns_rejected(self, table):
        table.join("a", "Ann")
        with pytest.raises(InvalidCommandForPhase):
            table.hit("a")
        with pytest.raises(InvalidCommandForPhase):
            table.stand("a")

    def test_action_from_unknown_player_rejected(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        with pytest.raises(UnknownPlayer):
            table.hit("ghost")

    def test_double_wins_double(self, table, stack):
        stack(table, "5H", "10S", "6H", "7S", "10C")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        table.double("a")

        player = table.players["a"]
        assert len(player.hand) == 3
        assert player.result is RoundResult.WIN
        # 100 - 10 - 10 + 40
        assert player.balance == 120

    def test_double_ends_turn_without_21(self, table, stack):
        stack(table, "5H", "10S", "4H", "8S", "2C")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        table.double("a")

        player = table.players["a"]
        assert player.standing
        assert player.score == 11
        assert player.result is RoundResult.LOSE
        assert player.balance == 80

    def test_double_bust(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S", "KC")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.double("a")

        assert table.players["a"].result is RoundResult.BUST
        assert table.players["a"].balance == 80

    def test_double_without_funds_rejected(self, stack):
        """Test balance 5 with bet 10 cannot double and nothing changes."""
        table = BlackjackTable(starting_balance=15, rng=Random(3))
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        with pytest.raises(InsufficientBalance):
            table.double("a")

        player = table.players["a"]
        assert player.balance == 5
        assert player.current_bet == 10
        assert len(player.hand) == 2
        assert table.current_player_id == "a"

    def test_double_after_hit_rejected(self, table, stack):
        stack(table, "10H", "10S", "2H", "7S", "3C")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.hit("a")

        with pytest.raises(InvalidAction):
            table.double("a")
        assert table.players["a"].current_bet == 10


class TestNaturals:
    """Tests for naturals dealt in the first two cards."""

    def test_player_blackjack_pays_three_to_two(self, table, stack):
        stack(table, "AH", "10S", "KH", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        assert table.phase is Phase.SETTLED
        assert table.players["a"].result is RoundResult.BLACKJACK
        assert table.players["a"].balance == 115

    def test_blackjack_payout_rounds_down(self, table, stack):
        stack(table, "AH", "10S", "KH", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 5)

        # floor(5 * 2.5) = 12
        assert table.players["a"].balance == 107

    def test_both_blackjack_is_push(self, table, stack):
        stack(table, "AH", "AS", "KH", "KS")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        assert phase_history(table) == ["betting", "dealing", "settled"]
        assert table.players["a"].result is RoundResult.PUSH
        assert table.players["a"].balance == 100

    def test_dealer_blackjack_beats_player(self, table, stack):
        stack(table, "10H", "AS", "7H", "KS")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        assert table.phase is Phase.SETTLED
        assert table.players["a"].result is RoundResult.LOSE
        assert table.players["a"].balance == 90


class TestTurnOrder:
    """Tests for turn sequencing across several players."""

    def _three_player_round(self, table, stack):
        # Deal order: A, B, C, dealer, A, B, C, dealer
        stack(table, "10H", "10D", "10C", "10S", "7H", "6D", "8C", "7S", "KH")
        for pid, name in (("a", "Ann"), ("b", "Bob"), ("c", "Cat")):
            table.join(pid, name)
        for pid in ("a", "b", "c"):
            table.place_bet(pid, 10)

    def test_turns_follow_join_order(self, table, stack):
        self._three_player_round(table, stack)

        assert table.current_player_id == "a"
        table.stand("a")
        assert table.current_player_id == "b"
        table.hit("b")
        assert table.players["b"].busted
        assert table.current_player_id == "c"

        table.stand("c")

        history = phase_history(table)
        assert history[-2:] == ["dealerTurn", "settled"]
        assert table.current_player_id is None

    def test_results_per_player(self, table, stack):
        self._three_player_round(table, stack)
        table.stand("a")
        table.hit("b")
        table.stand("c")

        assert table.dealer_score == 17
        assert table.players["a"].result is RoundResult.PUSH
        assert table.players["b"].result is RoundResult.BUST
        assert table.players["c"].result is RoundResult.WIN
        assert [table.players[p].balance for p in ("a", "b", "c")] == [100, 90, 110]

    def test_out_of_turn_rejected(self, table, stack):
        self._three_player_round(table, stack)

        with pytest.raises(NotYourTurn):
            table.hit("c")
        assert len(table.players["c"].hand) == 2
        assert table.current_player_id == "a"

    def test_head_is_never_done(self, table, stack):
        self._three_player_round(table, stack)
        table.stand("a")

        head = table.players[table.current_player_id]
        assert not head.is_done

    def test_dealer_stands_on_soft_17(self, table, stack):
        stack(table, "10H", "AS", "8H", "6S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.stand("a")

        assert len(table.dealer_hand) == 2
        assert table.dealer_score == 17
        assert table.players["a"].result is RoundResult.WIN


class TestNextRound:
    """Tests for starting the next round."""

    def test_next_round_clears_round_state(self, table, stack):
        stack(table, "10H", "10S", "6H", "6S", "KD")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.stand("a")

        table.next_round("a")

        player = table.players["a"]
        assert table.phase is Phase.BETTING
        assert player.hand == []
        assert player.current_bet == 0
        assert not player.standing and not player.busted
        assert player.result is RoundResult.NONE
        assert player.balance == 110
        assert table.dealer_hand == []

    def test_next_round_before_settlement_rejected(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        with pytest.raises(InvalidCommandForPhase):
            table.next_round("a")

    def test_bankrupt_players_removed(self, table, stack):
        stack(table, "10H", "10S", "7H", "9S")
        table.join("a", "Ann")
        table.place_bet("a", 100)
        table.stand("a")
        assert table.players["a"].balance == 0

        table.next_round("a")

        assert "a" not in table.players
        assert table.phase is Phase.WAITING
        removed = events_of(table, EventType.PLAYER_REMOVED)
        assert removed[-1].data["reason"] == "bankrupt"

    def test_survivors_keep_playing(self, table, stack):
        stack(table, "10H", "10D", "10S", "7H", "9D", "9S")
        table.join("a", "Ann")
        table.join("b", "Bob")
        table.place_bet("a", 100)
        table.place_bet("b", 10)
        table.stand("a")
        table.stand("b")

        table.next_round("b")

        assert list(table.players) == ["b"]
        assert table.phase is Phase.BETTING

    def test_next_round_reshuffles_low_deck(self, stack):
        table = BlackjackTable(low_water_mark=52, rng=Random(5))
        # Dealer draws past the stacked cards on 16
        stack(table, "10H", "10S", "6H", "6S")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.stand("a")
        assert len(table.deck) < 52

        table.next_round("a")

        assert len(table.deck) == 52

    def test_rounds_continue_without_low_water_mark(self):
        """Test that a table dealing the deck to the last card keeps playing."""
        table = BlackjackTable(starting_balance=100000, low_water_mark=0, rng=Random(3))
        table.join("a", "Ann")

        for _ in range(40):
            table.place_bet("a", 1)
            if table.phase is Phase.PLAYER_TURN:
                table.stand("a")
            assert table.phase is Phase.SETTLED
            table.next_round("a")

        assert table.phase is Phase.BETTING


class TestLeave:
    """Tests for players leaving mid-round."""

    def test_leave_on_turn_advances(self, table, stack):
        stack(table, "10H", "10D", "10S", "7H", "8D", "7S")
        table.join("a", "Ann")
        table.join("b", "Bob")
        table.place_bet("a", 10)
        table.place_bet("b", 10)

        table.leave("a")

        assert table.current_player_id == "b"
        left = events_of(table, EventType.PLAYER_LEFT)
        assert left[-1].data["forfeited"] == 10

        table.stand("b")
        assert table.players["b"].result is RoundResult.WIN

    def test_last_player_leaving_closes_table(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        table.leave("a")

        assert table.players == {}
        assert table.phase is Phase.WAITING
        assert table.dealer_hand == []

    def test_leave_during_betting_can_trigger_deal(self, table):
        table.join("a", "Ann")
        table.join("b", "Bob")
        table.place_bet("a", 10)

        table.leave("b")

        assert table.phase in (Phase.PLAYER_TURN, Phase.SETTLED)
        assert table.round_players == ["a"]

    def test_unknown_player_cannot_leave(self, table):
        with pytest.raises(UnknownPlayer):
            table.leave("ghost")


class TestAdmin:
    """Tests for admin-gated commands."""

    def test_wrong_password_rejected(self, table):
        with pytest.raises(Unauthorized):
            table.set_admin("boss", "wrong")
        assert not table.admin_gate.is_admin("boss")

    def test_reset_requires_admin(self, table):
        table.join("a", "Ann")
        with pytest.raises(Unauthorized):
            table.admin_reset("a")

    def test_reset_restores_balances(self, table, stack):
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 30)
        table.set_admin("boss", "secret")

        table.admin_reset("boss")

        player = table.players["a"]
        assert table.phase is Phase.BETTING
        assert player.balance == 100
        assert player.hand == []
        assert player.current_bet == 0
        assert len(table.turn_queue) == 0
        assert len(table.deck) == 52

    def test_reset_empty_table_stays_waiting(self, table):
        table.set_admin("boss", "secret")
        table.admin_reset("boss")
        assert table.phase is Phase.WAITING

    @pytest.mark.parametrize("phase", ["dealing", "dealerTurn"])
    def test_reset_recovers_mid_round(self, table, phase):
        """Test that a reset forces betting from phases players cannot leave."""
        table.set_admin("boss", "secret")
        table.join("a", "Ann")
        table.place_bet("a", 10)
        table.machine.set_state(phase)

        table.admin_reset("boss")

        assert table.phase is Phase.BETTING
        assert table.players["a"].balance == 100
        assert table.players["a"].hand == []

    def test_reset_with_empty_table_mid_round_closes(self, table):
        table.set_admin("boss", "secret")
        table.machine.set_state("dealerTurn")
        table.admin_reset("boss")
        assert table.phase is Phase.WAITING

    def test_shuffle_only_between_hands(self, table, stack):
        table.set_admin("boss", "secret")
        stack(table, "10H", "10S", "6H", "7S")
        table.join("a", "Ann")
        table.place_bet("a", 10)

        with pytest.raises(InvalidCommandForPhase):
            table.admin_shuffle("boss")

        table.stand("a")
        table.admin_shuffle("boss")
        assert len(table.deck) == 52

    def test_remove_player(self, table):
        table.set_admin("boss", "secret")
        table.join("a", "Ann")
        table.join("b", "Bob")

        table.admin_remove_player("boss", "b")

        assert list(table.players) == ["a"]
        with pytest.raises(UnknownPlayer):
            table.admin_remove_player("boss", "b")

    def test_deck_listing_next_card_first(self, table, stack):
        table.set_admin("boss", "secret")
        stack(table, "AH")

        listing = table.admin_deck_listing("boss")

        assert listing[0] == Card.from_string("AH")
        assert len(listing) == 53

    def test_admin_commands_disabled_without_gate(self, rng):
        table = BlackjackTable(rng=rng)
        with pytest.raises(Unauthorized):
            table.set_admin("boss", "anything")
        with pytest.raises(Unauthorized):
            table.admin_shuffle("boss")

    def test_gate_is_per_requester(self):
        gate = AdminGate("pw")
        gate.authenticate("one", "pw")

        assert gate.is_admin("one")
        assert not gate.is_admin("two")
        gate.require_admin("one")
        with pytest.raises(Unauthorized):
            gate.require_admin("two")
