from contextlib import contextmanager
from flask import has_app_context


@contextmanager
def app_context():
    """Reuse the active app context, or build an app for worker processes."""
    if has_app_context():
        yield
        return
    from app import create_app
    with create_app().app_context():
        yield
