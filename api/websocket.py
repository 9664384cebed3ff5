"""WebSocket connection management with table engine integration."""

import asyncio
import json
import logging
from random import Random
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from api import schemas
from api.session import extract_player_id
from api.snapshot import deck_listing_to_dicts, table_state_to_dict
from config import config
from core.admin import AdminGate
from core.errors import TableError
from core.game import BlackjackTable
from core.game.events import EventType, GameEvent

logger = logging.getLogger(__name__)

router = APIRouter()


def create_table(rng: Random | None = None) -> BlackjackTable:
    """Build a table from the application configuration."""
    return BlackjackTable(
        starting_balance=config.table.starting_balance,
        low_water_mark=config.table.low_water_mark,
        admin_gate=AdminGate(config.table.admin_password),
        rng=rng,
    )


class ConnectionManager:
    """Manage WebSocket connections keyed by player id."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, player_id: str) -> None:
        """Accept and register a new connection."""
        await websocket.accept()
        previous = self._connections.get(player_id)
        if previous is not None and previous is not websocket:
            logger.info("Replacing existing connection for %s", player_id)
        self._connections[player_id] = websocket
        logger.info("Connected: %s (%d active)", player_id, self.active_connections)

    def disconnect(self, player_id: str, websocket: WebSocket | None = None) -> None:
        """Remove a connection; the player keeps their seat."""
        if websocket is not None and self._connections.get(player_id) is not websocket:
            return
        self._connections.pop(player_id, None)
        logger.info("Disconnected: %s (%d active)", player_id, self.active_connections)

    async def send_message(self, player_id: str, message: dict[str, Any]) -> None:
        """Send a message to a specific player."""
        websocket = self._connections.get(player_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except (RuntimeError, WebSocketDisconnect) as exc:
            logger.warning("Dropping message to %s: %s", player_id, exc)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Broadcast a message to all connections."""
        for player_id in list(self._connections):
            await self.send_message(player_id, message)

    @property
    def active_connections(self) -> int:
        """Return number of active connections."""
        return len(self._connections)


class TableDispatcher:
    """
    Serializes every command against the shared table.

    One command runs at a time under the lock; the events it emitted are
    then turned into a broadcast snapshot plus private balance updates.
    """

    def __init__(self, table: BlackjackTable, manager: ConnectionManager) -> None:
        self._lock = asyncio.Lock()
        self._manager = manager
        self._pending: list[GameEvent] = []
        self.table = table

    @property
    def table(self) -> BlackjackTable:
        return self._table

    @table.setter
    def table(self, table: BlackjackTable) -> None:
        self._table = table
        self._pending = []
        table.subscribe(self._pending_event)

    def _pending_event(self, event: GameEvent) -> None:
        self._pending.append(event)

    async def send_state(self, player_id: str) -> None:
        await self._manager.send_message(player_id, {
            "type": "gameState",
            "state": table_state_to_dict(self._table),
        })

    async def dispatch(self, player_id: str, command: schemas.Command) -> None:
        """Run one command to completion and publish its effects."""
        async with self._lock:
            self._pending = []
            try:
                private_reply = self._apply(player_id, command)
            except TableError as exc:
                self._pending = []
                logger.info("Rejected %s from %s: %s", command.type, player_id, exc.message)
                await self._manager.send_message(player_id, {
                    "type": "error",
                    "message": exc.message,
                })
                return

            events, self._pending = self._pending, []

            if private_reply is not None:
                await self._manager.send_message(player_id, private_reply)

            if events:
                await self._manager.broadcast({
                    "type": "gameState",
                    "state": table_state_to_dict(self._table),
                })
                await self._send_balance_updates(events)

    def _apply(self, player_id: str, command: schemas.Command) -> dict[str, Any] | None:
        """Map a command onto the table; return a private reply if any."""
        table = self._table
        actions = {
            "hit": table.hit,
            "stand": table.stand,
            "double": table.double,
            "nextRound": table.next_round,
            "leave": table.leave,
            "adminReset": table.admin_reset,
            "adminShuffle": table.admin_shuffle,
        }

        if command.type in actions:
            actions[command.type](player_id)
        elif isinstance(command, schemas.JoinGame):
            table.join(player_id, command.name)
        elif isinstance(command, schemas.PlaceBet):
            table.place_bet(player_id, command.amount)
        elif isinstance(command, schemas.SetAdmin):
            table.set_admin(player_id, command.password)
        elif isinstance(command, schemas.AdminRemovePlayer):
            table.admin_remove_player(player_id, command.player_id)
        elif isinstance(command, schemas.AdminShowDeck):
            cards = table.admin_deck_listing(player_id)
            logger.info("Deck listing sent to admin %s (%d cards)", player_id, len(cards))
            return {"type": "deckListing", "cards": deck_listing_to_dicts(cards)}
        elif isinstance(command, schemas.GetState):
            return {"type": "gameState", "state": table_state_to_dict(table)}
        return None

    async def _send_balance_updates(self, events: list[GameEvent]) -> None:
        """Send each affected player their latest balance, once."""
        balances: dict[str, int] = {}
        for event in events:
            if event.event_type == EventType.BALANCE_CHANGED:
                balances[event.data["player_id"]] = event.data["balance"]
        for player_id, balance in balances.items():
            await self._manager.send_message(player_id, {
                "type": "balanceUpdate",
                "amount": balance,
            })


# Global connection manager and dispatcher
manager = ConnectionManager()
dispatcher = TableDispatcher(create_table(), manager)


async def _send_error(player_id: str, message: str) -> None:
    await manager.send_message(player_id, {"type": "error", "message": message})


@router.websocket("/table/{token}")
async def table_websocket(websocket: WebSocket, token: str) -> None:
    """
    WebSocket endpoint for the shared table.

    Messages from client:
    - {"type": "joinGame", "name": "Ann"}
    - {"type": "placeBet", "amount": 10}
    - {"type": "hit"|"stand"|"double"|"nextRound"|"leave"|"getState"}
    - {"type": "setAdmin", "password": "..."}
    - {"type": "adminReset"|"adminShuffle"|"adminShowDeck"}
    - {"type": "adminRemovePlayer", "playerId": "..."}

    Messages to client:
    - {"type": "gameState", "state": {...}}
    - {"type": "balanceUpdate", "amount": 90}
    - {"type": "deckListing", "cards": [...]}
    - {"type": "error", "message": "..."}
    """
    player_id = extract_player_id(token)
    if player_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, player_id)
    await dispatcher.send_state(player_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                command = schemas.command_adapter.validate_python(json.loads(data))
            except json.JSONDecodeError:
                await _send_error(player_id, "Messages must be JSON")
                continue
            except ValidationError as exc:
                logger.info("Invalid message from %s: %s", player_id, exc.errors()[0]["msg"])
                await _send_error(player_id, f"Invalid message: {exc.errors()[0]['msg']}")
                continue

            await dispatcher.dispatch(player_id, command)

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(player_id, websocket)
