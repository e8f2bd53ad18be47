from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CategoryCreate(BaseModel):
    name: str
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    # Only fields that were actually sent are applied; an explicit
    # "parent_id": null moves the category to the root.
    name: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    parent_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    subcategories: List["CategoryResponse"] = []

    class Config:
        from_attributes = True


class CategoryFlatResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    parent_name: Optional[str] = None
    has_children: bool = False
