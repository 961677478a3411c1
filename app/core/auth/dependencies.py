from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Callable, List, Optional, Sequence

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.credentials import (
    ALL_PERMISSIONS, CallerIdentity, CredentialExtractor, PartnerAuthenticator, write_extractors
)
from app.core.auth.service import AuthService
from app.core.errors import ForbiddenError, RateLimitExceededError, UnauthorizedError
from app.core.rate_limit import FixedWindowRateLimiter, RateLimitConfig, get_rate_limiter
from app.shared.database.models import User

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _user_from_token(token: str, db: Session) -> Optional[User]:
    payload = AuthService.verify_token(token)
    if payload is None:
        return None

    user_id = payload.get("user_id")
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Obtener usuario actual desde el token"""
    user = _user_from_token(credentials.credentials, db)
    if user is None:
        raise UnauthorizedError("Token inválido o expirado")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Sesión de operador opcional (no falla si no hay token)"""
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials, db)


def require_roles(allowed_roles: List[str]):
    """Factory para crear dependency que requiere roles específicos"""
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise ForbiddenError(
                f"Rol '{current_user.role}' no autorizado. Roles permitidos: {allowed_roles}"
            )
        return current_user
    return role_checker


def get_admin_user(current_user: User = Depends(require_roles(["admin"]))):
    """Dependency para administradores"""
    return current_user


def session_identity(user: User) -> CallerIdentity:
    return CallerIdentity(
        identity=f"wh_{user.email}",
        kind="session",
        name=user.full_name,
        permissions=frozenset({ALL_PERMISSIONS}),
    )


def apply_rate_limit(
    identity: CallerIdentity,
    limiter: FixedWindowRateLimiter,
    config: RateLimitConfig,
    response: Response
) -> None:
    decision = limiter.check(identity.identity, config)
    if not decision.allowed:
        raise RateLimitExceededError(
            retry_after=decision.retry_after or 1,
            reset_at=decision.reset_at,
            limit=decision.limit
        )

    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.reset_at)


def require_partner_access(
    permissions: Sequence[str],
    rate_limit: Callable[[], RateLimitConfig],
    extractors: Callable[[], List[CredentialExtractor]] = write_extractors,
    allow_session: bool = True
):
    """
    Factory de dependency para endpoints de integración.

    1. Autentica por llave (headers / body / query) o por sesión de operador.
       Ambas vías son suficientes por sí solas.
    2. Aplica el rate limit por identidad.
    """
    async def partner_access(
        request: Request,
        response: Response,
        db: Session = Depends(get_db),
        user: Optional[User] = Depends(get_optional_user),
        limiter: FixedWindowRateLimiter = Depends(get_rate_limiter)
    ) -> CallerIdentity:
        authenticator = PartnerAuthenticator(db, extractors())
        identity = await authenticator.authenticate(request, permissions)

        if identity is None and allow_session and user is not None:
            if user.role in settings.partner_session_roles:
                identity = session_identity(user)

        if identity is None:
            raise UnauthorizedError()

        apply_rate_limit(identity, limiter, rate_limit(), response)
        return identity

    return partner_access
