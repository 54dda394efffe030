import logging
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import List, Literal
from examcore.core.config import settings
from examcore.core.auth import create_token

logger = logging.getLogger(__name__)

router = APIRouter()

Role = Literal["student", "author", "admin"]

class MockLogin(BaseModel):
    user_id: str = Field(min_length=1, max_length=255)
    roles: List[Role] = Field(default_factory=lambda: ["student"], min_length=1)

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    roles: List[Role]
    expires_in: int

@router.post("/mock-login", response_model=TokenOut)
def mock_login(payload: MockLogin):
    """Development token issuer; production tokens come from the identity provider."""
    if settings.is_production():
        raise HTTPException(status_code=404, detail="Not Found")
    logger.info(f"Issued development token for {payload.user_id} with roles {payload.roles}")
    return TokenOut(access_token=create_token(payload.user_id, list(payload.roles)), roles=payload.roles,
                    expires_in=settings.TOKEN_TTL_MINUTES * 60)
