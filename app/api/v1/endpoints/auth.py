"""Authentication endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from app.dependencies import AuthServiceDep, CurrentIdentity, RequestOriginDep, rate_limit

router = APIRouter()


@router.post(
    "/session",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limit("session"))],
    tags=["Authentication"],
    summary="Establish a session after sign-in",
)
async def establish_session(
    identity: CurrentIdentity,
    origin: RequestOriginDep,
    auth_service: AuthServiceDep,
) -> dict[str, Any]:
    """
    Called by the client right after a successful identity provider sign-in.

    Creates the caller's profile from their token claims on first sign-in and
    refreshes the last-login timestamp otherwise.
    """
    session = await auth_service.establish_session(identity, origin)
    return {
        "success": True,
        "message": "Profile created" if session.created else "Signed in",
        "created": session.created,
        "profile": jsonable_encoder(session.profile.model_dump(by_alias=True)),
    }
