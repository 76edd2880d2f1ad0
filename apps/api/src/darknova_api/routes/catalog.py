from fastapi import APIRouter, HTTPException
from typing import Optional
from darknova_core.catalog import BLOCK_CATEGORIES, BLOCKS, get_block_by_id, get_blocks_by_category

router = APIRouter(prefix="/catalog", tags=["catalog"])


def _block(b):
    return {"id": b.id, "name": b.name, "category": b.category}


@router.get("/categories")
def list_categories():
    return list(BLOCK_CATEGORIES)


@router.get("/blocks")
def list_blocks(category: Optional[str] = None):
    if category is None:
        return [_block(b) for b in BLOCKS]
    if category not in BLOCK_CATEGORIES:
        raise HTTPException(status_code=404, detail="Category not found")
    return [_block(b) for b in get_blocks_by_category(category)]


@router.get("/blocks/{block_id}")
def get_block(block_id: str):
    block = get_block_by_id(block_id)
    if not block:
        raise HTTPException(status_code=404, detail="Block not found")
    return _block(block)
