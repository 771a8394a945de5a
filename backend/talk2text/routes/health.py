# talk2text/routes/health.py

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "API is running..."


@router.get("/health")
async def health() -> dict:
    return {"ok": True}
