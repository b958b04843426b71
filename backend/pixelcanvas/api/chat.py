"""
Chat API: history and sending, with realtime fan-out of new messages.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pixelcanvas.auth import get_current_claims
from pixelcanvas.config import get_settings
from pixelcanvas.database import get_db
from pixelcanvas.realtime import manager, CHAT_MESSAGE
from pixelcanvas.schemas import ChatSend, ChatSendResponse, ChatMessageOut
from pixelcanvas.services.chat import sanitize_text, post_message, recent_messages

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])
settings = get_settings()


@router.get("/recent", response_model=List[ChatMessageOut], summary="Recent chat history")
async def recent(db: Session = Depends(get_db)):
    """Most recent messages in chronological order."""
    try:
        return recent_messages(db, settings.chat_history_limit)
    except Exception as e:
        logger.error(f"Failed to load chat history: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load chat history")


@router.post("/send", response_model=ChatSendResponse, summary="Send a chat message")
async def send(
    payload: ChatSend,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    text = sanitize_text(payload.text)
    if not text:
        raise HTTPException(status_code=400, detail="Empty message")

    sender_name = claims.get("name") or claims.get("email") or "anon"
    message = post_message(db, claims["uid"], sender_name, text)
    logger.info(f"Chat message {message.id} from {claims['uid']}")

    out = ChatMessageOut.model_validate(message).model_dump(mode="json", by_alias=True)
    try:
        await manager.broadcast(CHAT_MESSAGE, out)
    except Exception as e:
        logger.warning(f"Chat broadcast failed: {str(e)}")

    return ChatSendResponse(success=True, id=message.id)
