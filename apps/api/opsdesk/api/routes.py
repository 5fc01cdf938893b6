from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from opsdesk.authz.dependencies import get_auth_context
from opsdesk.core.config import get_settings
from opsdesk.crm.api import leads_router, router as sales_router
from opsdesk.metrics import generate_metrics_payload, metrics_content_type
from opsdesk.platform.security import AuthContext, PermissionKey
from opsdesk.procurement.api import po_requests_router, sales_order_requests_router
from opsdesk.tasks.api import router as tasks_router

router = APIRouter()
router.include_router(tasks_router)
router.include_router(po_requests_router)
router.include_router(sales_order_requests_router)
router.include_router(sales_router)
router.include_router(leads_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(ctx: AuthContext = Depends(get_auth_context)) -> dict[str, str | list[str]]:
    return {
        "id": ctx.user_id,
        "full_name": ctx.full_name,
        "role": ctx.role_key,
        "permissions": list(ctx.capabilities),
    }


@router.get("/metrics", tags=["system"])
def metrics(ctx: AuthContext = Depends(get_auth_context)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not ctx.capabilities.intersects_or_admin([PermissionKey.SETTINGS]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: settings")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
