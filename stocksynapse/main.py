# stocksynapse/main.py
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .database import InventoryStore, create_store
from .errors import ForecastingError, PersistenceError, ValidationError
from .forecast import ForecastClient
from .logic import (
    delete_product_logic, forecast_logic, get_product_logic, list_products_logic,
    register_product_logic, search_product_logic, stats_logic, update_product_logic,
)
from .models import Product, ProductIn

logger = logging.getLogger(__name__)


def get_store(request: Request) -> InventoryStore:
    return request.app.state.store


def get_forecaster(request: Request) -> Optional[ForecastClient]:
    return request.app.state.forecaster


def create_app(settings: Optional[Settings] = None,
               store: Optional[InventoryStore] = None,
               forecaster: Optional[ForecastClient] = None) -> FastAPI:
    settings = settings or load_settings()
    if store is None:
        store = create_store(settings)
    if forecaster is None and settings.gemini_api_key:
        forecaster = ForecastClient.from_settings(settings)
    if forecaster is None:
        logger.warning("GEMINI_API_KEY is not set; forecast requests will be rejected")

    app = FastAPI(title="StockSynapse inventory")
    app.state.settings = settings
    app.state.store = store
    app.state.forecaster = forecaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------------
    # Error mapping
    # ---------------------------
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ForecastingError)
    async def _forecasting_error(request: Request, exc: ForecastingError):
        return JSONResponse(status_code=502, content={"detail": str(exc), "status_code": exc.status_code})

    # ---------------------------
    # Product endpoints
    # ---------------------------
    @app.post("/products", status_code=201)
    async def register_product(payload: ProductIn, store: InventoryStore = Depends(get_store)):
        return await register_product_logic(store, payload)

    @app.get("/products", response_model=List[Product])
    async def list_products(category: Optional[str] = None, available_only: bool = False,
                            store: InventoryStore = Depends(get_store)):
        return await list_products_logic(store, category, available_only)

    @app.get("/products/search", response_model=List[Product])
    async def search_product(name: str = Query(..., min_length=1),
                             store: InventoryStore = Depends(get_store)):
        return await search_product_logic(store, name)

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str, store: InventoryStore = Depends(get_store)):
        return await get_product_logic(store, product_id)

    @app.put("/products/{product_id}", response_model=Product)
    async def update_product(product_id: str, payload: ProductIn,
                             store: InventoryStore = Depends(get_store)):
        return await update_product_logic(store, product_id, payload)

    @app.delete("/products/{product_id}")
    async def delete_product(product_id: str, store: InventoryStore = Depends(get_store)):
        return await delete_product_logic(store, product_id)

    # ---------------------------
    # Forecast and dashboard
    # ---------------------------
    @app.post("/products/{product_id}/forecast")
    async def forecast(product_id: str, store: InventoryStore = Depends(get_store),
                       forecaster: Optional[ForecastClient] = Depends(get_forecaster)):
        return await forecast_logic(store, forecaster, product_id)

    @app.get("/stats")
    async def stats(store: InventoryStore = Depends(get_store)):
        return await stats_logic(store)

    return app


def run():
    import uvicorn

    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")
    app = create_app(settings)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
