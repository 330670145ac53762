from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from redis.exceptions import RedisError

from app.domain.common.validation import active_players, is_member
from app.domain.draft.models import FinishedState, GradingState, dump_state, try_load_state
from app.domain.draft.scoring import calculate_winner
from app.settings import settings_for
from app.store.models import MatchRecord
from app.transport.protocols import InEnd, OutError, OutGameEnded, OutStateUpdated
from app.util.timeutil import now_ms

logger = logging.getLogger(__name__)

Outgoing = List[object]
Result = Tuple[Outgoing, Outgoing]


async def handle_end(*, app, room_id: str, user_id: Optional[str], msg: InEnd) -> Result:
    """
    Close the match once.

    Results are recomputed from the persisted rosters; the posted ones are only
    compared and logged. Every non-spectator member gets a win or a loss.
    """
    repo = app.state.repo
    settings = settings_for(app)
    ts = now_ms()

    room = await repo.get_room(room_id)
    if room is None:
        return [OutError(code="ROOM_NOT_FOUND", message="Room not found")], []
    player = await repo.get_player(room_id, user_id)
    if not is_member(player):
        return [OutError(code="NOT_MEMBER", message="You are not in this room")], []
    if room.status == "FINISHED":
        return [OutError(code="ALREADY_FINISHED", message="Game already ended")], []
    if room.status != "DRAFTING":
        return [OutError(code="NOT_STARTED", message="Game has not started")], []

    state = try_load_state(await repo.get_game_state(room_id))
    if not isinstance(state, (GradingState, FinishedState)):
        return [OutError(code="NOT_GRADED", message="Draft is not complete")], []

    results = calculate_winner(state.player_teams, state.turn_order)
    claimed = (msg.data or {}).get("winnerId")
    if claimed is not None and claimed != results.winner_id:
        logger.warning(
            "Room %s: client %s reported winner %s, recomputed %s",
            room_id, user_id, claimed, results.winner_id,
        )

    if not await repo.claim_room_end(room_id, ts):
        return [OutError(code="ALREADY_FINISHED", message="Game already ended")], []

    finished = FinishedState(
        selected_universes=list(state.selected_universes),
        turn_order=list(state.turn_order),
        player_teams=state.player_teams,
        skips_remaining=dict(state.skips_remaining),
        departed=list(state.departed),
        messages=list(state.messages),
        rev=state.rev,
        updated_by=state.updated_by,
        round=state.round,
        current_turn=state.current_turn,
        results=results,
    )
    blob = dump_state(finished)
    try:
        await repo.finish_room(room_id, blob, ts)
    except RedisError:
        # give the claim back for a retried end
        await repo.clear_room_end(room_id)
        raise

    players = await repo.list_players(room_id)
    for p in active_players(players):
        await repo.record_result(p.user_id, p.user_id == results.winner_id)

    await repo.append_match(
        MatchRecord(
            room_id=room_id,
            winner_id=results.winner_id,
            scores=dict(results.scores),
            teams=blob.get("playerTeams") or {},
            ts=ts,
        ),
        max_matches=settings.MATCH_HISTORY_LIMIT,
    )
    logger.info("Room %s finished, winner %s", room_id, results.winner_id)

    ended = OutGameEnded(results=results.model_dump(by_alias=True, mode="json"))
    return [ended], [OutStateUpdated(state=blob), ended]
