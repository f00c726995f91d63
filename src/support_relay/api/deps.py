"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from support_relay.application.dto.principal import Principal
from support_relay.application.ports.auth import TokenVerifier
from support_relay.application.uow import UnitOfWork, UoWFactory
from support_relay.config import settings
from support_relay.infrastructure.auth.hs256_verifier import HS256Verifier
from support_relay.infrastructure.auth.jwks_verifier import JWKSVerifier

_bearer_scheme = HTTPBearer()


def get_uow_factory(request: Request) -> UoWFactory:
    return request.app.state.uow_factory


async def get_uow(
    factory: Annotated[UoWFactory, Depends(get_uow_factory)],
) -> AsyncIterator[UnitOfWork]:
    async with factory() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def build_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Principal:
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_staff(principal: CurrentPrincipal) -> Principal:
    if not principal.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return principal


CurrentStaff = Annotated[Principal, Depends(get_current_staff)]
