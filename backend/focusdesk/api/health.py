from typing import Any

from fastapi import APIRouter

from focusdesk.api.deps import StoresDep
from focusdesk.exceptions import StorageUnavailableError

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check(stores: StoresDep) -> dict[str, Any]:
    checks = {
        "database": "unhealthy",
    }

    try:
        await stores.users.ping()
        checks["database"] = "healthy"
    except StorageUnavailableError as e:
        checks["database"] = f"unhealthy: {str(e)}"

    overall = "healthy" if all(v == "healthy" for v in checks.values()) else "unhealthy"

    return {
        "status": overall,
        "checks": checks,
    }
