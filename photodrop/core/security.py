# photodrop/core/security.py
from typing import Optional

from fastapi import Header, HTTPException, status
from pydantic import BaseModel


class Owner(BaseModel):
    id: str


def current_owner(x_owner_id: Optional[str] = Header(default=None, alias="X-Owner-Id")) -> Owner:
    # Authentication lives in the account layer in front of this service;
    # it forwards the verified owner id and we trust it here.
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing owner identity")
    return Owner(id=owner_id)
