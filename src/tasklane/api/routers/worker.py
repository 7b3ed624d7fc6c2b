"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter, Depends

from tasklane.api.deps import Services, get_services

router = APIRouter()


@router.get("/tasks/health")
def tasks_health(services: Services = Depends(get_services)) -> dict:
    """Tasks subsystem health check."""
    return {
        "status": "ok",
        "subsystem": "tasks",
        "backend": services.tasks_client.backend,
    }
