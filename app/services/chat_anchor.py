import logging
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import db
from models.chat import ChatThread, Message
from app.errors import NotFound, OwnershipConflict, ValidationError

logger = logging.getLogger(__name__)


def _find(buyer_id, seller_id):
    return ChatThread.query.filter_by(buyer_id=buyer_id, seller_id=seller_id).first()


def resolve_thread(buyer_id, seller_id) -> ChatThread:
    """Return the single thread for the ordered (buyer, seller) pair, creating it if needed.

    Does NOT commit. A concurrent creator losing the unique-constraint race
    rolls back its savepoint and reuses the winner's row.
    """
    thread = _find(buyer_id, seller_id)
    if thread is None:
        try:
            with db.session.begin_nested():
                thread = ChatThread(buyer_id=buyer_id, seller_id=seller_id)
                db.session.add(thread)
        except IntegrityError:
            logger.info({"event": "chat_thread_race", "buyer_id": buyer_id, "seller_id": seller_id})
            thread = _find(buyer_id, seller_id)
            if thread is None:
                raise
        else:
            logger.info({"event": "chat_thread_created", "chat_id": thread.id, "buyer_id": buyer_id, "seller_id": seller_id})
    thread.updated_at = datetime.utcnow()
    db.session.flush()
    return thread


def append_message(chat_id, sender_id, content, is_system=False) -> Message:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")
    thread = db.session.get(ChatThread, chat_id)
    if thread is None:
        raise NotFound("Chat not found")
    msg = Message(chat_id=chat_id, sender_id=sender_id, content=content, is_system=is_system)
    db.session.add(msg)
    thread.updated_at = datetime.utcnow()
    db.session.flush()
    return msg


def threads_for(user_id):
    return (
        ChatThread.query.filter(or_(ChatThread.buyer_id == user_id, ChatThread.seller_id == user_id))
        .order_by(ChatThread.updated_at.desc(), ChatThread.id.desc())
        .all()
    )


def messages_for(chat_id, user_id):
    thread = db.session.get(ChatThread, chat_id)
    if thread is None:
        raise NotFound("Chat not found")
    if not thread.has_participant(user_id):
        raise OwnershipConflict("Not a participant in this chat")
    return Message.query.filter_by(chat_id=chat_id).order_by(Message.id).all()
