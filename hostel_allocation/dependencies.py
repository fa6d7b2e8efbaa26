# hostel_allocation/dependencies.py
"""Request-scoped dependencies shared by the routers."""

from fastapi import Header, HTTPException, status


def get_actor_id(x_actor_id: str = Header(default=None, alias="X-Actor-Id")) -> str:
    """
    The authenticated user performing a write, supplied by the calling layer.
    Passed explicitly into every mutating service call for attribution.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing X-Actor-Id header")
    return x_actor_id.strip()
