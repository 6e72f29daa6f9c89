from .responses import ok, error, validation_error_response
from .auth import auth_required
from .validation import validate_schema
from .db import transactional, conditional_add, expire_row
from .jwt import (
    create_access_token,
    decode_token,
    TokenError,
)

__all__ = [
    'ok',
    'error',
    'validation_error_response',
    'auth_required',
    'create_access_token',
    'decode_token',
    'TokenError',
    'validate_schema',
    'transactional',
    'conditional_add',
    'expire_row',
]
