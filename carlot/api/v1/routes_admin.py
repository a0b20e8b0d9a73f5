from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from carlot.api.deps import AdminDependency
from carlot.core.auth import ADMIN_SCOPE
from carlot.core.config import Settings, get_settings
from carlot.ingest.transcoder import codec_support

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    scopes: list[str] = Field(default_factory=lambda: [ADMIN_SCOPE])
    user_id: str | None = Field(default=None, examples=["dealer-1"])


class DevTokenResponse(BaseModel):
    token: str


@router.get("/env-check", response_model=EnvCheckResponse, summary="Report available image codecs")
async def env_check(context: AdminDependency) -> EnvCheckResponse:
    return EnvCheckResponse(**codec_support())


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=1)
    claims: dict[str, object] = {
        "scopes": payload.scopes,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if payload.user_id:
        claims["sub"] = payload.user_id
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    token = jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)
    return DevTokenResponse(token=token)


__all__ = ["router"]
