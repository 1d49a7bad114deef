"""
FastAPI Dependencies
Common dependencies for authentication, fridge membership, mail and Google sign-in.
"""

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.database import get_session
from biafridge.shared.models import Fridge
from biafridge.api.config import get_settings
from biafridge.api.errors import Forbidden, NotFound
from biafridge.api.services.fridge_store import FridgeStore
from biafridge.api.services.google_identity import GoogleTokenVerifier
from biafridge.api.services.mail_service import MailSender

settings = get_settings()
security = HTTPBearer()


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Dependency to get the authenticated user identity from the JWT token.

    Args:
        credentials: HTTP Bearer token

    Returns:
        str: The opaque user id carried in ``sub``

    Raises:
        HTTPException: If token is invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise credentials_exception
    return user_id


def get_mailer(request: Request) -> MailSender:
    """The mail transport resolved once at startup."""
    return request.app.state.mailer


def get_google_verifier(request: Request) -> GoogleTokenVerifier:
    return request.app.state.google_verifier


async def ensure_fridge_member(session: AsyncSession, fridge_id: str, user_id: str) -> Fridge:
    """
    Load a fridge and check that ``user_id`` belongs to it.

    Raises:
        NotFound: unknown fridge
        Forbidden: the user is not a member
    """
    fridge = await FridgeStore(session).get(fridge_id)
    if fridge is None:
        raise NotFound("Fridge not found")
    if user_id not in fridge.members:
        raise Forbidden("You are not a member of this fridge")
    return fridge


async def require_fridge_member(
    fridge_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> Fridge:
    """Dependency for fridge-scoped endpoints taking ``?fridge_id=``."""
    return await ensure_fridge_member(session, fridge_id, user_id)
