from __future__ import annotations

from typing import List, Optional, Tuple

from app.domain.common.validation import is_member
from app.domain.draft.models import ChatEntry, dump_state, try_load_state
from app.settings import settings_for
from app.transport.protocols import InChatMessage, OutChatMessage, OutError
from app.util.timeutil import now_ms

Outgoing = List[object]
Result = Tuple[Outgoing, Outgoing]


async def handle_chat_message(*, app, room_id: str, user_id: Optional[str], msg: InChatMessage) -> Result:
    repo = app.state.repo
    settings = settings_for(app)

    player = await repo.get_player(room_id, user_id)
    if not is_member(player):
        return [OutError(code="NOT_MEMBER", message="You are not in this room")], []

    state = try_load_state(await repo.get_game_state(room_id))
    if state is None:
        return [OutError(code="NO_GAME_STATE", message="No game in progress")], []

    text = msg.data.text.strip()
    if not text:
        return [OutError(code="EMPTY_MESSAGE", message="Message is empty")], []

    entry = ChatEntry(user_id=user_id, text=text, ts=now_ms())
    messages = list(state.messages) + [entry]
    limit = max(1, settings.CHAT_HISTORY_LIMIT)
    state = state.model_copy(update={"messages": messages[-limit:]})
    await repo.set_game_state(room_id, dump_state(state))

    ev = OutChatMessage(message=entry.model_dump(by_alias=True, mode="json"))
    return [ev], [ev]
