from fastapi import APIRouter

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "Performance Hub API",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
    }
