from typing import Optional

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool

from .database import InventoryStore
from .forecast import ForecastClient
from .models import ProductIn

# This file contains the core logic for all API endpoints. Store and forecast
# calls block on disk, database or network I/O, so they run in the thread pool.


# Product endpoints
async def register_product_logic(store: InventoryStore, payload: ProductIn):
    product = await run_in_threadpool(
        store.add, payload.name, payload.price, payload.quantity,
        payload.category, payload.description,
    )
    return {"product_id": product.id, "product": product}


async def list_products_logic(store: InventoryStore, category: Optional[str] = None,
                              available_only: bool = False):
    out = []
    for p in await run_in_threadpool(store.get_all):
        if category and p.category.lower() != category.lower():
            continue
        if available_only and p.quantity <= 0:
            continue
        out.append(p)
    return out


async def search_product_logic(store: InventoryStore, name: str):
    term = name.lower()
    return [p for p in await run_in_threadpool(store.get_all) if term in p.name.lower()]


async def get_product_logic(store: InventoryStore, product_id: str):
    p = await run_in_threadpool(store.get_by_id, product_id)
    if p is None:
        raise HTTPException(status_code=404, detail="product not found")
    return p


async def update_product_logic(store: InventoryStore, product_id: str, payload: ProductIn):
    found = await run_in_threadpool(
        store.update, product_id, payload.name, payload.price, payload.quantity,
        payload.category, payload.description,
    )
    if not found:
        raise HTTPException(status_code=404, detail="product not found")
    return await get_product_logic(store, product_id)


async def delete_product_logic(store: InventoryStore, product_id: str):
    if not await run_in_threadpool(store.delete, product_id):
        raise HTTPException(status_code=404, detail="product not found")
    return {"deleted": product_id}


# Forecast
async def forecast_logic(store: InventoryStore, forecaster: Optional[ForecastClient], product_id: str):
    if forecaster is None:
        raise HTTPException(status_code=503, detail="forecasting is not configured (GEMINI_API_KEY missing)")
    product = await get_product_logic(store, product_id)
    text = await run_in_threadpool(forecaster.generate_forecast, product)
    return {"product_id": product_id, "forecast": text}


# Dashboard
async def stats_logic(store: InventoryStore):
    products = await run_in_threadpool(store.get_all)
    return {
        "product_count": len(products),
        "total_quantity": sum(p.quantity for p in products),
        "inventory_value": round(sum(p.price * p.quantity for p in products), 2),
        "out_of_stock": sum(1 for p in products if p.quantity == 0),
    }
