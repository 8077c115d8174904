from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from models import User
from routers.errors import call_store
from schemas import UserCreate, UserOut
from services.store import EventStore, get_store

router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_PREFIX = "mock-"


class LoginRequest(BaseModel):
    user_id: int
    username: Optional[str] = None


def issue_token(user_id: int) -> str:
    return f"{TOKEN_PREFIX}{user_id}"


def get_current_user_id(authorization: Optional[str] = Header(None)) -> int:
    """
    Resolve ``Authorization: Bearer mock-<id>`` to a user id.
    Stand-in for real session auth.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="User not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.startswith(TOKEN_PREFIX):
        raise HTTPException(status_code=401, detail="User not authenticated")
    try:
        return int(token[len(TOKEN_PREFIX):])
    except ValueError:
        raise HTTPException(status_code=401, detail="User not authenticated")


@router.post("/login")
def login(req: LoginRequest, store: EventStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Mock login that echoes a token-like payload for the UI.
    """
    user = call_store("auth.login", store.get_user, req.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "ok": True,
        "user_id": user.id,
        "username": req.username or user.username,
        "token": issue_token(user.id),
    }


@router.post("/register", status_code=201)
def register(req: UserCreate, store: EventStore = Depends(get_store)) -> Dict[str, Any]:
    user = call_store(
        "auth.register",
        store.create_user,
        User(username=req.username, display_name=req.display_name, email=req.email),
    )
    if req.preferences is not None:
        call_store(
            "auth.register", store.update_user_preferences, user.id, req.preferences
        )
    return {
        "ok": True,
        "user": UserOut.model_validate(user).model_dump(by_alias=True),
        "token": issue_token(user.id),
    }
