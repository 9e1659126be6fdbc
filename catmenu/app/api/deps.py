from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from ..core import rbac
from ..core.security import AuthenticatedUser, NonceSigner, decode_token
from ..core.settings import Settings
from ..services.category_cache import CategoryCache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_category_cache(request: Request) -> CategoryCache:
    return request.app.state.category_cache


def get_nonce_signer(request: Request) -> NonceSigner:
    return request.app.state.nonce_signer


async def get_current_user(
    authorization: str = Header("", alias="Authorization"),
    settings: Settings = Depends(get_app_settings),
) -> AuthenticatedUser:
    token = authorization.removeprefix("Bearer ").strip()
    return decode_token(token, settings)


def require_role(resource: str, action: str):
    async def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
        settings: Settings = Depends(get_app_settings),
    ) -> AuthenticatedUser:
        if rbac.can(user.roles, resource, action, settings=settings):
            return user
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    return dependency


def reject_invalid_nonce(
    signer: NonceSigner, token: str | None, action: str, subject: str
) -> None:
    if not signer.verify(token, action, subject):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid security token"
        )
