from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import JSONResponse

from ...api import deps
from ...core.security import ADMIN_NONCE_ACTION, AuthenticatedUser, NonceSigner
from ...schemas.menu import AdminToken, MessageData, MessageResponse, failure
from ...services.category_cache import CategoryCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/cache", tags=["admin"])


@router.get("/token", response_model=AdminToken)
async def issue_admin_token(
    user: AuthenticatedUser = Depends(deps.require_role("cache", "clear")),
    signer: NonceSigner = Depends(deps.get_nonce_signer),
) -> AdminToken:
    return AdminToken(nonce=signer.create(ADMIN_NONCE_ACTION, user.sub))


@router.post("/clear", response_model=MessageResponse)
def clear_cache(
    security: str = Form(""),
    user: AuthenticatedUser = Depends(deps.require_role("cache", "clear")),
    cache: CategoryCache = Depends(deps.get_category_cache),
    signer: NonceSigner = Depends(deps.get_nonce_signer),
):
    deps.reject_invalid_nonce(signer, security, ADMIN_NONCE_ACTION, user.sub)
    if not cache.clear_all():
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure("Error clearing cache"),
        )
    logger.info(json.dumps({"event": "cache clear requested", "user": user.sub}))
    return MessageResponse(success=True, data=MessageData(message="Cache cleared"))
