from fastapi import APIRouter

from vigora.db.session import ping_database

router = APIRouter()

@router.get("/", summary="Health check")
async def health_root():
    return {"status": "ok"}

@router.get("/db", summary="Database probe")
async def health_db():
    await ping_database()
    return {"status": "ok", "database": "reachable"}
