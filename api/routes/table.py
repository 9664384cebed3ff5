"""Table HTTP endpoints."""

import logging

from fastapi import APIRouter

from api.schemas import SessionResponse, TableStateResponse
from api.session import create_session
from api.snapshot import table_state_response
from api.websocket import dispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/session")
async def new_session() -> SessionResponse:
    """Issue a signed token identifying a new player connection."""
    token, player_id = create_session()
    logger.info("Issued session for %s", player_id)
    return SessionResponse(token=token, player_id=player_id)


@router.get("/state")
async def get_state() -> TableStateResponse:
    """Get the current public table snapshot."""
    return table_state_response(dispatcher.table)
