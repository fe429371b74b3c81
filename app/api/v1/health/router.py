from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.metrics import InMemoryMetricsSink
from app.db.session import get_db
from app.documents.converter import ConverterChain, locate_soffice

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("")
async def health(request: Request, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Database reachability, available conversion methods and, when collected, request metrics."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        database = f"error: {e.__class__.__name__}"

    body: Dict[str, Any] = {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "converter": {
            "soffice": await locate_soffice(),
            "methods": await ConverterChain.available_methods(),
        },
    }
    metrics = getattr(request.app.state, "metrics", None)
    if isinstance(metrics, InMemoryMetricsSink):
        body["metrics"] = metrics.snapshot()
    return body
