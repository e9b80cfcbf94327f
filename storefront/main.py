# storefront/main.py
from fastapi import FastAPI
from storefront.data.database import Base, engine
from storefront.api.routers import carts, orders, health
from storefront.utils.logging import configure_logging, get_logger
import uvicorn

# IMPORT WSZYSTKICH MODELI NA POCZĄTKU (PRZED JAKIMKOLWIEK CREATE_ALL)
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


def create_app(create_tables: bool = True) -> FastAPI:
    configure_logging()

    if create_tables:
        logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
        Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="Storefront Checkout",
        version="1.0.0",
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)

    return app


# uvicorn storefront.main:create_app --factory
if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
