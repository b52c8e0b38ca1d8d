"""Sign-up, login and token verification endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header

from ..dependencies import Services, get_services
from ..schemas import LoginRequest, SignupRequest, account_json, identity_json


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", status_code=201)
async def signup(
    body: SignupRequest, services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Creates an account and logs it in"""
    token, user = await services.auth.signup(body.name, body.email, body.password)
    return {"message": "User created successfully", "token": token, "user": account_json(user)}


@router.post("/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Checks credentials and issues a fresh token"""
    token, user = await services.auth.login(body.email, body.password)
    return {"message": "Login successful", "token": token, "user": account_json(user)}


@router.get("/verify")
async def verify(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Reports whether the bearer token is valid"""
    identity = services.auth.authenticate(authorization)
    return {"valid": True, "user": identity_json(identity)}
