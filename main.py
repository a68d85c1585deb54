import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import config
from auth import router as auth_router
from catalog import brands, categories, subcategories
from database import ensure_indexes, get_db
from errors import register_exception_handlers
from orders import cart_router, order_router
from products import router as products_router
from users import router as users_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_provider = app.dependency_overrides.get(get_db, get_db)
    ensure_indexes(db_provider())
    yield


app = FastAPI(title="E-commerce Catalog API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

for router in (categories, subcategories, brands, products_router, users_router, auth_router, cart_router, order_router):
    app.include_router(router)


# Routes
@app.get("/")
def read_root():
    return {"message": "Welcome to the E-commerce API"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
        response["database_name"] = db.name
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
