from fastapi import Request

from ..session import Session


def get_session(request: Request) -> Session:
    """The session created by the application lifespan."""
    return request.app.state.session
