from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.exceptions import NotFoundError
from app.database.connection import get_db
from app.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from app.services.product_service import (
    create_product, get_product, list_products, list_products_by_category,
    update_product, delete_product, to_product_response,
)
from app.dependencies.auth import require_admin


router = APIRouter(prefix="/products", tags=["Product Catalog"])

# CREATE
@router.post("/", response_model=ProductResponse, status_code=201, dependencies=[Depends(require_admin)])
def create(data: ProductCreate, db: Session = Depends(get_db)):
    return to_product_response(create_product(db, data))

# LIST
@router.get("/", response_model=list[ProductResponse])
def list_all(db: Session = Depends(get_db)):
    return [to_product_response(p) for p in list_products(db)]

# LIST BY CATEGORY
@router.get("/by-category/{category_id}", response_model=list[ProductResponse])
def list_by_category(
    category_id: int,
    include_subcategories: bool = False,
    db: Session = Depends(get_db),
):
    products = list_products_by_category(db, category_id, include_subcategories)
    return [to_product_response(p) for p in products]

# GET BY ID
@router.get("/{product_id}", response_model=ProductResponse)
def get(product_id: int, db: Session = Depends(get_db)):
    return to_product_response(get_product(db, product_id))

# UPDATE
@router.put("/{product_id}", response_model=ProductResponse, dependencies=[Depends(require_admin)])
def update(product_id: int, data: ProductUpdate, db: Session = Depends(get_db)):
    return to_product_response(update_product(db, product_id, data))

# DELETE
@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def delete(product_id: int, db: Session = Depends(get_db)):
    success = delete_product(db, product_id)
    if not success:
        raise NotFoundError(f"Product with ID {product_id} not found.")
    return {"message": "Product deleted"}
