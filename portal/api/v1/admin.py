"""
Admin API endpoints: system bootstrap and super-admin account management.
"""

from fastapi import APIRouter, Depends

from portal.core.config import Settings
from portal.core.context import AuthenticatedContext
from portal.core.dependencies import get_admin_service, get_app_settings, require_super_admin
from portal.models.schemas import (
    AdminInviteRequest, AdminUpdateRequest, ApiResponse, BootstrapRequest
)
from portal.services.admins import AdminManagementService

router = APIRouter(tags=["Admin"])


@router.post("/bootstrap", response_model=ApiResponse, status_code=201)
async def bootstrap_system(
    request: BootstrapRequest,
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    """
    Create the initial super admin.
    This endpoint is only available when no admins exist.
    """
    admin = await admin_service.bootstrap_super_admin(
        request.full_name, request.email, request.password
    )
    return ApiResponse(
        message="System bootstrapped successfully",
        data={"admin": admin.model_dump(by_alias=True, mode="json")},
    )


@router.post("/super-admin/invite", response_model=ApiResponse, status_code=201)
async def invite_admin(
    request: AdminInviteRequest,
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Invite a new admin. The temporary password is echoed only outside production.
    """
    result = await admin_service.invite_admin(
        context.principal, request.full_name, request.email, request.is_super_admin
    )
    data = {"admin": result.admin.model_dump(by_alias=True, mode="json")}
    if not settings.is_production:
        data["temporaryPassword"] = result.temporary_password
    return ApiResponse(message="Admin invited successfully", data=data)


@router.get("/super-admin/admins", response_model=ApiResponse)
async def list_admins(
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    admins = await admin_service.list_admins()
    return ApiResponse(
        message="Admins retrieved successfully",
        data={"admins": [a.model_dump(by_alias=True, mode="json") for a in admins]},
    )


@router.get("/super-admin/admins/{admin_id}", response_model=ApiResponse)
async def get_admin(
    admin_id: str,
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    admin = await admin_service.get_admin(admin_id)
    return ApiResponse(
        message="Admin retrieved successfully",
        data={"admin": admin.model_dump(by_alias=True, mode="json")},
    )


@router.put("/super-admin/admins/{admin_id}", response_model=ApiResponse)
async def update_admin(
    admin_id: str,
    request: AdminUpdateRequest,
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    admin = await admin_service.update_admin(
        context.principal,
        admin_id,
        full_name=request.full_name,
        email=request.email,
        is_active=request.is_active,
        is_super_admin=request.is_super_admin,
        password=request.password,
    )
    return ApiResponse(
        message="Admin updated successfully",
        data={"admin": admin.model_dump(by_alias=True, mode="json")},
    )


@router.put("/super-admin/admins/{admin_id}/toggle-status", response_model=ApiResponse)
async def toggle_admin_status(
    admin_id: str,
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    admin = await admin_service.toggle_admin_status(context.principal, admin_id)
    state = "activated" if admin.is_active else "deactivated"
    return ApiResponse(
        message=f"Admin {state} successfully",
        data={"admin": admin.model_dump(by_alias=True, mode="json")},
    )


@router.delete("/super-admin/admins/{admin_id}", response_model=ApiResponse)
async def delete_admin(
    admin_id: str,
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    await admin_service.delete_admin(context.principal, admin_id)
    return ApiResponse(message="Admin deleted successfully")


@router.get("/super-admin/stats", response_model=ApiResponse)
async def get_stats(
    context: AuthenticatedContext = Depends(require_super_admin),
    admin_service: AdminManagementService = Depends(get_admin_service)
):
    stats = await admin_service.get_admin_stats()
    return ApiResponse(
        message="Statistics retrieved successfully",
        data={"stats": stats.model_dump(by_alias=True)},
    )
