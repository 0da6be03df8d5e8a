"""User management endpoints for tenant admins."""

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder

from app.dependencies import AdminContextDep, RequestOriginDep, UserAdminServiceDep, rate_limit
from app.schemas.users import (
    CreateUserRequest,
    RepairBusinessRequest,
    TargetUserRequest,
    UpdateRoleRequest,
)

router = APIRouter(prefix="/users", tags=["users"])


def envelope(message: str, **payload: Any) -> dict[str, Any]:
    """Success envelope shared by every route."""
    return {"success": True, "message": message, **jsonable_encoder(payload)}


@router.post(
    "/create",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("create_user"))],
    summary="Create a user in the caller's business",
)
async def create_user(
    body: CreateUserRequest,
    admin: AdminContextDep,
    origin: RequestOriginDep,
    service: UserAdminServiceDep,
) -> dict[str, Any]:
    created = await service.create_user(admin, body, origin)
    message = "User created successfully"
    if created.used_temp_password:
        message += ". A temporary password was assigned; the user must reset it before signing in."
    return envelope(message, **created.model_dump(by_alias=True))


@router.delete(
    "/delete",
    dependencies=[Depends(rate_limit("delete_user"))],
    summary="Delete a user of the caller's business",
)
async def delete_user(
    body: TargetUserRequest,
    admin: AdminContextDep,
    origin: RequestOriginDep,
    service: UserAdminServiceDep,
) -> dict[str, Any]:
    deleted = await service.delete_user(admin, body.uid, origin)
    return envelope("User deleted successfully", uid=deleted.uid)


@router.post(
    "/reset-password",
    dependencies=[Depends(rate_limit("reset_password"))],
    summary="Generate a password reset link",
)
async def reset_password(
    body: TargetUserRequest,
    admin: AdminContextDep,
    origin: RequestOriginDep,
    service: UserAdminServiceDep,
) -> dict[str, Any]:
    reset = await service.reset_password(admin, body.uid, origin)
    return envelope(
        f"Password reset link generated for {reset.email}",
        resetLink=reset.reset_link,
    )


@router.post(
    "/update-role",
    dependencies=[Depends(rate_limit("update_role"))],
    summary="Change a user's role",
)
async def update_role(
    body: UpdateRoleRequest,
    admin: AdminContextDep,
    origin: RequestOriginDep,
    service: UserAdminServiceDep,
) -> dict[str, Any]:
    update = await service.update_role(admin, body.uid, body.role, origin)
    return envelope(
        f"Role updated to {update.role}. "
        "User must log out and log back in for changes to take full effect.",
        **update.model_dump(by_alias=True),
    )


@router.get(
    "/list-auth",
    dependencies=[Depends(rate_limit("list_users"))],
    summary="List accounts of the caller's business",
)
async def list_auth_users(
    admin: AdminContextDep,
    service: UserAdminServiceDep,
) -> dict[str, Any]:
    result = await service.list_tenant_users(admin)
    if result.degraded:
        return envelope(
            "User accounts could not be listed right now. Please try again later.",
            users=[],
            degraded=True,
        )
    return envelope(
        f"Found {len(result.users)} users",
        users=[user.model_dump(by_alias=True) for user in result.users],
    )


@router.post(
    "/repair-business",
    dependencies=[Depends(rate_limit("repair_business"))],
    summary="Backfill a missing business assignment",
)
async def repair_business(
    admin: AdminContextDep,
    origin: RequestOriginDep,
    service: UserAdminServiceDep,
    body: RepairBusinessRequest | None = None,
) -> dict[str, Any]:
    result = await service.repair_business(admin, body.uid if body else None, origin)
    return envelope(
        "Business assignment repaired. Sign out and back in to refresh your token.",
        **result.model_dump(by_alias=True),
    )


@router.get(
    "/audit-logs",
    dependencies=[Depends(rate_limit("audit_logs"))],
    summary="Recent audit entries of the caller's business",
)
async def list_audit_logs(
    admin: AdminContextDep,
    service: UserAdminServiceDep,
    limit: int = Query(default=50, ge=1, le=200),
) -> dict[str, Any]:
    logs = await service.list_audit_logs(admin, limit)
    return envelope(f"Found {len(logs)} audit entries", logs=logs)
