import logging
from typing import List

from sqlalchemy.orm import Session

from pixelcanvas.config import get_settings
from pixelcanvas.models import ChatMessage

logger = logging.getLogger(__name__)
settings = get_settings()


def sanitize_text(raw) -> str:
    """Escape angle brackets, trim and cap at the configured length."""
    if not raw:
        return ""
    text = str(raw).replace("<", "&lt;").replace(">", "&gt;").strip()
    return text[:settings.chat_max_length]


def post_message(db: Session, sender: str, sender_name: str, text: str) -> ChatMessage:
    message = ChatMessage(sender=sender, sender_name=sender_name or "anon", text=text)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def recent_messages(db: Session, limit: int) -> List[ChatMessage]:
    """Latest `limit` messages, oldest first."""
    rows = (
        db.query(ChatMessage)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    rows.reverse()
    return rows
