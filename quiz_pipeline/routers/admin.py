import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from quiz_pipeline.core.admin_auth import create_access_token, get_current_admin, verify_password
from quiz_pipeline.core.config import settings
from quiz_pipeline.core.database import get_db
from quiz_pipeline.core.personas import PERSONAS
from quiz_pipeline.core.security import encrypt_secret
from quiz_pipeline.models.account import Account
from quiz_pipeline.schemas.jobs import AccountCreateRequest, AccountResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/login", response_model=LoginResponse)
def admin_login(body: LoginRequest):
    if not settings.ADMIN_PASSWORD_HASH or not settings.JWT_SECRET_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin login is not configured",
        )
    if (
        body.username != settings.ADMIN_USERNAME
        or not verify_password(body.password, settings.ADMIN_PASSWORD_HASH)
    ):
        logger.warning("Failed admin login for %s", body.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    return LoginResponse(access_token=create_access_token(body.username))


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        name=account.name,
        personas=account.personas or [],
        status=account.status,
        channel_id=account.channel_id,
        has_credentials=bool(account.refresh_token_encrypted),
        created_at=account.created_at,
    )


@router.post("/accounts", response_model=AccountResponse, dependencies=[Depends(get_current_admin)])
def create_account(body: AccountCreateRequest, db: Session = Depends(get_db)):
    """Register a channel. The refresh token is stored encrypted."""
    unknown = [p for p in body.personas if p not in PERSONAS]
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown persona(s): {', '.join(unknown)}. Must be one of: {', '.join(PERSONAS)}"
        )
    if db.query(Account).filter(Account.id == body.id).first():
        raise HTTPException(status_code=409, detail=f"Account {body.id} already exists")

    account = Account(
        id=body.id,
        name=body.name,
        personas=body.personas,
        status="active",
        channel_id=body.channel_id,
        refresh_token_encrypted=encrypt_secret(body.refresh_token) if body.refresh_token else None,
    )
    db.add(account)
    db.commit()
    db.refresh(account)

    logger.info("Created account %s with personas %s", account.id, account.personas)
    return _account_response(account)


@router.get("/accounts", response_model=List[AccountResponse], dependencies=[Depends(get_current_admin)])
def list_accounts(db: Session = Depends(get_db)):
    return [_account_response(account) for account in db.query(Account).order_by(Account.id).all()]
