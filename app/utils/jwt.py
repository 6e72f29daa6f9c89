import datetime as dt
from typing import Dict
import jwt
from flask import current_app


def _secret() -> str:
    return current_app.config["JWT_SECRET"]


def _utcnow():
    return dt.datetime.utcnow()


def create_access_token(user_id: int) -> str:
    """Issue an access token the way the external auth provider does.

    Only used by the test-support blueprint; production tokens come from the
    auth service and are merely verified here.
    """
    cfg = current_app.config
    payload: Dict = {
        "sub": str(user_id),
        "type": "access",
        "exp": _utcnow() + dt.timedelta(minutes=cfg["ACCESS_TOKEN_LIFETIME_MIN"]),
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


class TokenError(Exception):
    pass


def decode_token(token: str, expected_type: str = "access") -> Dict:
    try:
        data = jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise TokenError("token expired")
    except jwt.InvalidTokenError:
        raise TokenError("invalid token")

    if data.get("type") != expected_type:
        raise TokenError(f"expected {expected_type} token")
    if not str(data.get("sub", "")).isdigit():
        raise TokenError("invalid subject")
    return data
