"""API dependencies for dependency injection."""

import secrets
from typing import Annotated, Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from insightforge_core.api.queue import RunQueue
from insightforge_core.config import Settings
from insightforge_core.domain.models import User
from insightforge_core.domain.services.runs import RunService


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Iterator[Session]:
    """Get a database session from the application's Database."""
    session = request.app.state.database.session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_run_queue(request: Request) -> RunQueue:
    return request.app.state.run_queue


def verify_api_token(
    settings: Annotated[Settings, Depends(get_settings_dep)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Check the shared bearer token.

    Raises:
        HTTPException: 401 if the token is missing or wrong.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token, settings.api_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_user(
    _: Annotated[None, Depends(verify_api_token)],
    db: Annotated[Session, Depends(get_db)],
    x_user_email: Annotated[Optional[str], Header()] = None,
) -> User:
    """Resolve (and create on first use) the user named by ``X-User-Email``.

    Raises:
        HTTPException: 401 if the header is missing or not an email address.
    """
    email = (x_user_email or "").strip()
    if "@" not in email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Email header is required",
        )
    return RunService(db).get_or_create_user(email)


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
RunQueueDep = Annotated[RunQueue, Depends(get_run_queue)]
