from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class CategoryRecord(BaseModel):
    """Public view of a cached category."""

    name: str
    slug: str
    url: str


class SubcategoriesResponse(BaseModel):
    success: bool = True
    data: Dict[str, CategoryRecord] = Field(default_factory=dict)


class MessageData(BaseModel):
    message: str


class MessageResponse(BaseModel):
    success: bool
    data: MessageData


class MenuConfig(BaseModel):
    """Bootstrap payload consumed by the cascading selector."""

    nonce: str
    levels: int
    layout: str
    labels: List[str]
    show_button: bool
    menu_width: int
    root: Dict[str, CategoryRecord] = Field(default_factory=dict)


class AdminToken(BaseModel):
    nonce: str


def failure(message: str) -> dict[str, object]:
    return MessageResponse(success=False, data=MessageData(message=message)).model_dump()


__all__ = [
    "AdminToken",
    "CategoryRecord",
    "MenuConfig",
    "MessageData",
    "MessageResponse",
    "SubcategoriesResponse",
    "failure",
]
