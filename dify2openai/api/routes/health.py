"""Liveness check endpoint."""


async def health() -> dict:
    """GET /health"""
    return {"status": "ok"}
