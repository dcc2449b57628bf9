"""Auth router: registration and password login.

Endpoints:
    POST /auth/register  - Create an account
    POST /auth/login     - Exchange email + password for a Bearer token
    GET  /auth/me        - Identity behind the current token
"""
import logging

from fastapi import APIRouter, Depends

from parley.envelope import created_response, success_response
from parley.services import Services, get_current_identity, get_services

from .schemas import Identity, LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, services: Services = Depends(get_services)):
    user = await services.identity.register(body.username, body.email, body.password)
    return created_response("User registered successfully", {"user": user})


@router.post("/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    token, user = await services.identity.login(body.email, body.password)
    logger.info("[Auth] %s logged in", user.username)
    return success_response("Login successful", {
        "access_token": token,
        "token_type": "bearer",
        "user": user,
    })


@router.get("/me")
async def me(identity: Identity = Depends(get_current_identity)):
    return success_response("Current user", identity)
