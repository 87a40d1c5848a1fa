"""Customer request lifecycle API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from app.api.deps import get_customer_request_service
from app.core.auth import AuthContext, require_api_token
from app.schemas.customer_requests import (
    CustomerRequestCreate,
    CustomerRequestPage,
    CustomerRequestRead,
    CustomerRequestUpdate,
)
from app.services.customer_requests import CustomerRequestService

router = APIRouter(prefix="/customer-requests", tags=["customer-requests"])
SERVICE_DEP = Depends(get_customer_request_service)
AUTH_DEP = Depends(require_api_token)


@router.post("", response_model=CustomerRequestRead, status_code=status.HTTP_201_CREATED)
async def create_customer_request(
    payload: CustomerRequestCreate,
    service: CustomerRequestService = SERVICE_DEP,
    _auth: AuthContext = AUTH_DEP,
) -> CustomerRequestRead:
    """Record a request and open its Linear issue; nothing is kept if that fails."""
    return await service.create(payload)


@router.get("", response_model=CustomerRequestPage)
async def list_customer_requests(
    status_filter: str | None = Query(default=None, alias="status"),
    external_user_id: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    service: CustomerRequestService = SERVICE_DEP,
    _auth: AuthContext = AUTH_DEP,
) -> CustomerRequestPage:
    return await service.list(
        status=status_filter,
        external_user_id=external_user_id,
        limit=limit,
        cursor=cursor,
    )


@router.get("/{request_id}", response_model=CustomerRequestRead)
async def get_customer_request(
    request_id: str,
    service: CustomerRequestService = SERVICE_DEP,
    _auth: AuthContext = AUTH_DEP,
) -> CustomerRequestRead:
    return await service.get(request_id)


@router.patch("/{request_id}", response_model=CustomerRequestRead)
async def update_customer_request(
    request_id: str,
    payload: CustomerRequestUpdate,
    service: CustomerRequestService = SERVICE_DEP,
    _auth: AuthContext = AUTH_DEP,
) -> CustomerRequestRead:
    """Apply a partial update; omitted fields keep their stored values."""
    return await service.update(request_id, payload)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer_request(
    request_id: str,
    service: CustomerRequestService = SERVICE_DEP,
    _auth: AuthContext = AUTH_DEP,
) -> Response:
    await service.soft_delete(request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
