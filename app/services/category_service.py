from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Set, Tuple

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.core.logging import get_logger
from app.database.connection import unit_of_work
from app.models.category import Category
from app.models.order import OrderItem
from app.models.product import Product
from app.schemas.category import (
    CategoryCreate,
    CategoryFlatResponse,
    CategoryResponse,
    CategoryUpdate,
)

logger = get_logger(__name__)


def _get_category_or_404(db: Session, category_id: int, label: str = "Category") -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError(f"{label} with ID {category_id} not found")
    return category


def _clean_name(name) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidArgumentError("Category name is required", field="name")
    return cleaned


def to_category_response(category: Category, parent_name=None) -> CategoryResponse:
    if parent_name is None and category.parent is not None:
        parent_name = category.parent.name
    return CategoryResponse(
        id=category.id,
        name=category.name,
        parent_id=category.parent_id,
        parent_name=parent_name,
        created_at=category.created_at,
        updated_at=category.updated_at,
        subcategories=[],
    )


# --------------------------
# SUBTREE TRAVERSAL
# --------------------------
def collect_descendant_ids(db: Session, root_id: int, include_root: bool = False) -> Set[int]:
    """
    Every category id reachable from `root_id` through child links.

    Walks one level per query and keeps a visited set, so a corrupted
    parent chain that loops back on itself still terminates.
    """
    visited: Set[int] = {root_id}
    frontier = [root_id]
    while frontier:
        rows = db.query(Category.id).filter(Category.parent_id.in_(frontier)).all()
        frontier = []
        for (child_id,) in rows:
            if child_id not in visited:
                visited.add(child_id)
                frontier.append(child_id)

    if not include_root:
        visited.discard(root_id)
    return visited


def _load_subtrees(
    db: Session, root_ids: Iterable[int]
) -> Tuple[Dict[int, Category], Dict[int, List[int]]]:
    """
    Load the descendants of `root_ids` level by level into an id-keyed arena.
    Returns (nodes, children) where children maps parent id -> child ids.
    Levels deeper than CATEGORY_TREE_MAX_DEPTH are left out.
    """
    nodes: Dict[int, Category] = {}
    children: Dict[int, List[int]] = defaultdict(list)
    seen: Set[int] = set(root_ids)
    frontier = list(seen)
    depth = 0

    while frontier:
        rows = (
            db.query(Category)
            .filter(Category.parent_id.in_(frontier))
            .order_by(Category.id)
            .all()
        )
        if not rows:
            break
        if depth >= settings.CATEGORY_TREE_MAX_DEPTH:
            logger.warning(
                "Category tree deeper than %s levels; truncating below ids %s",
                settings.CATEGORY_TREE_MAX_DEPTH,
                frontier,
            )
            break

        frontier = []
        for row in rows:
            if row.id in seen:
                continue
            seen.add(row.id)
            nodes[row.id] = row
            children[row.parent_id].append(row.id)
            frontier.append(row.id)
        depth += 1

    return nodes, children


def _assemble(
    root: Category,
    nodes: Dict[int, Category],
    children: Dict[int, List[int]],
) -> CategoryResponse:
    # breadth-first order, then build bottom-up so no recursion is needed
    order = [root.id]
    i = 0
    while i < len(order):
        order.extend(children.get(order[i], []))
        i += 1

    arena = dict(nodes)
    arena[root.id] = root
    built: Dict[int, CategoryResponse] = {}
    for node_id in reversed(order):
        node = arena[node_id]
        if node_id == root.id:
            response = to_category_response(node)
        else:
            response = to_category_response(node, parent_name=arena[node.parent_id].name)
        response.subcategories = [built[c] for c in children.get(node_id, [])]
        built[node_id] = response

    return built[root.id]


# --------------------------
# CREATE / UPDATE
# --------------------------
def create_category(db: Session, data: CategoryCreate) -> Category:
    name = _clean_name(data.name)
    if data.parent_id is not None:
        _get_category_or_404(db, data.parent_id, label="Parent category")

    now = datetime.utcnow()
    with unit_of_work(db):
        category = Category(
            name=name,
            parent_id=data.parent_id,
            created_at=now,
            updated_at=now,
        )
        db.add(category)

    db.refresh(category)
    return category


def update_category(db: Session, category_id: int, data: CategoryUpdate) -> Category:
    category = _get_category_or_404(db, category_id)
    sent = data.model_fields_set

    with unit_of_work(db):
        if "name" in sent:
            category.name = _clean_name(data.name)

        if "parent_id" in sent and data.parent_id != category.parent_id:
            new_parent_id = data.parent_id
            if new_parent_id is not None:
                _get_category_or_404(db, new_parent_id, label="Parent category")
                if new_parent_id == category.id:
                    raise InvalidArgumentError("A category cannot be its own parent", field="parent_id")
                if new_parent_id in collect_descendant_ids(db, category.id):
                    raise InvalidArgumentError(
                        "A category cannot be moved under one of its own subcategories",
                        field="parent_id",
                    )
            category.parent_id = new_parent_id

        category.updated_at = datetime.utcnow()

    db.refresh(category)
    return category


# --------------------------
# READ
# --------------------------
def get_category_tree(db: Session, category_id: int) -> CategoryResponse:
    category = _get_category_or_404(db, category_id)
    nodes, children = _load_subtrees(db, [category.id])
    return _assemble(category, nodes, children)


def get_subcategories(db: Session, category_id: int) -> List[CategoryResponse]:
    category = _get_category_or_404(db, category_id)
    nodes, children = _load_subtrees(db, [category.id])
    return [_assemble(nodes[c], nodes, children) for c in children.get(category.id, [])]


def get_root_categories(db: Session) -> List[CategoryResponse]:
    roots = (
        db.query(Category)
        .filter(Category.parent_id.is_(None))
        .order_by(Category.id)
        .all()
    )
    if not roots:
        return []
    nodes, children = _load_subtrees(db, [r.id for r in roots])
    return [_assemble(root, nodes, children) for root in roots]


def list_categories_flat(db: Session) -> List[CategoryFlatResponse]:
    categories = db.query(Category).order_by(Category.id).all()
    parents_with_children = {c.parent_id for c in categories if c.parent_id is not None}
    names = {c.id: c.name for c in categories}
    return [
        CategoryFlatResponse(
            id=c.id,
            name=c.name,
            parent_id=c.parent_id,
            parent_name=names.get(c.parent_id),
            has_children=c.id in parents_with_children,
        )
        for c in categories
    ]


# --------------------------
# DELETE (recursive cascade)
# --------------------------
def delete_category(db: Session, category_id: int) -> bool:
    """
    Remove the category, every descendant category and the products filed
    under any of them, all in one transaction. Order items that pointed at a
    removed product keep their price snapshots with product_id cleared.
    """
    category = db.get(Category, category_id)
    if not category:
        return False

    with unit_of_work(db):
        ids = collect_descendant_ids(db, category_id, include_root=True)
        product_ids = [
            pid for (pid,) in db.query(Product.id).filter(Product.category_id.in_(ids)).all()
        ]
        if product_ids:
            db.execute(
                update(OrderItem)
                .where(OrderItem.product_id.in_(product_ids))
                .values(product_id=None)
            )
            db.execute(
                delete(Product)
                .where(Product.id.in_(product_ids))
            )
        db.execute(
            delete(Category)
            .where(Category.id.in_(ids))
        )

    logger.info(
        "Deleted category %s with %s descendant(s) and %s product(s)",
        category_id,
        len(ids) - 1,
        len(product_ids),
    )
    return True
