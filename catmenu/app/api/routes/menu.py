from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import JSONResponse

from ...api import deps
from ...core.security import ANONYMOUS, PUBLIC_NONCE_ACTION, NonceSigner
from ...core.settings import Settings
from ...schemas.menu import CategoryRecord, MenuConfig, SubcategoriesResponse, failure
from ...services.categories import coerce_category_id
from ...services.category_cache import CategoryCache, MenuCategory
from ...services.taxonomy import CategoryStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/menu", tags=["menu"])

FETCH_FAILED = "Could not load categories"


def _records(children: tuple[MenuCategory, ...]) -> dict[str, CategoryRecord]:
    return {str(child.id): CategoryRecord(**child.public()) for child in children}


def _fetch_failed(parent_id: int) -> JSONResponse:
    logger.warning(
        json.dumps({"event": "category fetch failed", "parent_id": parent_id}),
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=failure(FETCH_FAILED)
    )


@router.post("/subcategories", response_model=SubcategoriesResponse)
def get_subcategories(
    parent_id: str = Form("0"),
    security: str = Form(""),
    cache: CategoryCache = Depends(deps.get_category_cache),
    signer: NonceSigner = Depends(deps.get_nonce_signer),
):
    deps.reject_invalid_nonce(signer, security, PUBLIC_NONCE_ACTION, ANONYMOUS)
    parent = coerce_category_id(parent_id)
    try:
        children = cache.get(parent)
    except CategoryStoreError:
        return _fetch_failed(parent)
    return SubcategoriesResponse(data=_records(children))


@router.get("/config", response_model=MenuConfig)
def get_menu_config(
    cache: CategoryCache = Depends(deps.get_category_cache),
    signer: NonceSigner = Depends(deps.get_nonce_signer),
    settings: Settings = Depends(deps.get_app_settings),
):
    try:
        root = cache.get()
    except CategoryStoreError:
        return _fetch_failed(0)
    return MenuConfig(
        nonce=signer.create(PUBLIC_NONCE_ACTION, ANONYMOUS),
        levels=settings.MLCM_INITIAL_LEVELS,
        layout=settings.MLCM_MENU_LAYOUT,
        labels=settings.level_labels,
        show_button=settings.MLCM_SHOW_BUTTON,
        menu_width=settings.MLCM_MENU_WIDTH,
        root=_records(root),
    )
