from functools import wraps
from flask import request, g
from .responses import error
from .jwt import decode_token, TokenError
from models import db
from models.user import UserProfile


def auth_required(func):
    """Verify the bearer token issued by the auth provider and load the
    caller's profile into ``request.user``. Buyers and sellers share one
    account type."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        auth = request.headers.get("Authorization", "")
        if not auth:
            return error("Authorization header missing", status=401)
        token = auth.split(" ", 1)[1] if auth.startswith("Bearer ") else auth
        try:
            payload = decode_token(token, expected_type="access")
        except TokenError as e:
            return error(str(e), status=401)

        g.user_id = int(payload["sub"])
        user = db.session.get(UserProfile, g.user_id)
        if not user:
            return error("No profile for this account", status=401)
        request.user = user
        return func(*args, **kwargs)

    return wrapper
