from payeebatch.presentation.api.routers.jobs import router as jobs_router
from payeebatch.presentation.api.routers.maintenance import router as maintenance_router

__all__ = [
    "jobs_router",
    "maintenance_router",
]
