from flask import Blueprint, request
from app.services import chat_anchor
from app.utils import auth_required, ok
from app.version import API_PREFIX

chat_bp = Blueprint("chats", __name__, url_prefix=f"{API_PREFIX}/chats")


@chat_bp.before_request
@auth_required
def _require_user():
    return None


@chat_bp.route("", methods=["GET"])
def list_threads():
    """
    Conversations the caller takes part in, newest first
    ---
    tags:
      - Chats
    """
    threads = chat_anchor.threads_for(request.user.id)
    return ok([t.to_dict() for t in threads])


@chat_bp.route("/<int:chat_id>/messages", methods=["GET"])
def list_messages(chat_id):
    messages = chat_anchor.messages_for(chat_id, request.user.id)
    return ok([m.to_dict() for m in messages])
