import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import database
from auth import router as auth_router
from bills import router as bills_router
from config import settings
from errors import register_exception_handlers
from expenses import router as expenses_router
from inventory import router as inventory_router
from logger import get_logger
from packages import router as packages_router
from reports import router as reports_router

logger = get_logger("main")

app = FastAPI(title="Salon Back-Office API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(packages_router)
app.include_router(bills_router)
app.include_router(inventory_router)
app.include_router(expenses_router)
app.include_router(reports_router)


# ----- Misc & Test -----

@app.get("/")
def read_root():
    return {"message": "Salon Back-Office API"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected"
            response["database_name"] = database.db.name
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "❌ Not Configured"
    except Exception as e:
        logger.warning("[MAIN] Database check failed: %s", e)
        response["database"] = f"Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
