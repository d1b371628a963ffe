"""
Caller identity resolution

The session layer in front of the API sets ``X-User-Id`` for signed-in
users. Anonymous browsers send ``X-Anonymous-User-Id`` with an ``anon_``
prefixed id.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from motionswap.config.constants import ANONYMOUS_USER_PREFIX


def resolve_user_id(
    x_user_id: Optional[str] = Header(default=None),
    x_anonymous_user_id: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Return the caller's user id, or None when unauthenticated"""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    if x_anonymous_user_id and x_anonymous_user_id.startswith(ANONYMOUS_USER_PREFIX):
        return x_anonymous_user_id
    return None


def require_user_id(user_id: Optional[str] = Depends(resolve_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id
