"""
Shared request dependencies.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

CLIENT_ID_HEADER = "X-Client-Id"


def get_client_id(
    x_client_id: Optional[str] = Header(None, alias=CLIENT_ID_HEADER),
) -> Optional[str]:
    """Opaque per-browser id; optional for read endpoints."""
    if x_client_id is None:
        return None
    client_id = x_client_id.strip()
    return client_id or None


def require_client_id(
    x_client_id: Optional[str] = Header(None, alias=CLIENT_ID_HEADER),
) -> str:
    client_id = get_client_id(x_client_id)
    if not client_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{CLIENT_ID_HEADER} header is required",
        )
    return client_id
