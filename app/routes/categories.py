from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.database.connection import get_db
from app.dependencies.auth import require_admin
from app.schemas.category import (
    CategoryCreate,
    CategoryFlatResponse,
    CategoryResponse,
    CategoryUpdate,
)
from app.services.category_service import (
    create_category,
    delete_category,
    get_category_tree,
    get_root_categories,
    get_subcategories,
    list_categories_flat,
    to_category_response,
    update_category,
)

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("/root", response_model=List[CategoryResponse])
def root_categories(db: Session = Depends(get_db)):
    return get_root_categories(db)


@router.get("/flat", response_model=List[CategoryFlatResponse])
def flat_categories(db: Session = Depends(get_db)):
    return list_categories_flat(db)


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return get_category_tree(db, category_id)


@router.get("/{category_id}/subcategories", response_model=List[CategoryResponse])
def subcategories(category_id: int, db: Session = Depends(get_db)):
    return get_subcategories(db, category_id)


@router.post("/", response_model=CategoryResponse, status_code=201, dependencies=[Depends(require_admin)])
def create_category_route(data: CategoryCreate, db: Session = Depends(get_db)):
    return to_category_response(create_category(db, data))


@router.put("/{category_id}", response_model=CategoryResponse, dependencies=[Depends(require_admin)])
def update_category_route(category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)):
    return to_category_response(update_category(db, category_id, data))


@router.delete("/{category_id}", dependencies=[Depends(require_admin)])
def delete_category_route(category_id: int, db: Session = Depends(get_db)):
    if not delete_category(db, category_id):
        raise NotFoundError(f"Category with ID {category_id} not found")
    return {"message": "Category deleted successfully"}
