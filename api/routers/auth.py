"""Manager login endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from schemas import LoginRequest, ManagerResponse, TokenResponse, UserRecord
from services import auth
from storage import DirectoryStorage, get_storage

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, storage: DirectoryStorage = Depends(get_storage)):
    """Exchange manager credentials for a bearer token."""
    user = await auth.authenticate(storage, data.username, data.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return auth.create_access_token(user)


@router.get("/me", response_model=ManagerResponse)
async def me(user: UserRecord = Depends(auth.require_manager)):
    return user
