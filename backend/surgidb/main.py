# backend/surgidb/main.py
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.audit.router import router as audit_router
from .apps.cart.router import router as cart_router
from .apps.equipment.router import router as equipment_router
from .apps.invoices.router import router as invoices_router
from .apps.stats.router import router as stats_router


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


app = FastAPI(title="Surgical Stock API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Idempotency-Key"],
)

@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Surgical stock backend is running"}

@app.get("/health", tags=["health"])
def health():
    return {"status": "ok", "env": os.getenv("APP_ENV", "development")}

app.include_router(equipment_router)
app.include_router(cart_router)
app.include_router(stats_router)
app.include_router(invoices_router)
app.include_router(audit_router)
