from fastapi import APIRouter, HTTPException, Depends
from datetime import timedelta
from sqlalchemy.orm import Session
import logging

from schemas import (
    LoginRequest, LoginResponse, UserResponse, LogoutResponse, SetupRequest,
    ForgotPasswordRequest, ResetPasswordRequest, MessageResponse,
)
from auth import (
    authenticate_user, create_access_token, hash_password, get_user_by_email,
    generate_password_reset_token, verify_password_reset_token,
)
from config import ACCESS_TOKEN_EXPIRE_MINUTES
from database import get_db
from dependencies import get_current_user
from models import User, ROLE_ADMIN
from utils.mailer import send_reset_email

router = APIRouter(prefix="/api", tags=["auth"])
logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent"


def _login_response(user: User) -> LoginResponse:
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role},
        expires_delta=access_token_expires
    )

    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=LoginResponse)
def login(login_request: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(login_request.email, login_request.password, db)
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"User logged in: ID={user.id}")
    return _login_response(user)


@router.post("/logout", response_model=LogoutResponse)
def logout(current_user: User = Depends(get_current_user)):
    # JWT はステートレスなので、サーバー側でトークンを無効化する必要はない
    # 実際のログアウト処理はクライアント側でトークンを削除することで行う
    return LogoutResponse(message="Successfully logged out")


@router.post("/setup", response_model=LoginResponse, status_code=201)
def setup(setup_request: SetupRequest, db: Session = Depends(get_db)):
    """
    初期セットアップAPI

    ユーザーが1人も存在しない場合に限り、最初の管理者を作成してログイン状態にする。
    """
    if db.query(User).count() > 0:
        raise HTTPException(status_code=409, detail="Setup has already been completed")

    user = User(
        user_name=setup_request.user_name,
        email=setup_request.email,
        password=hash_password(setup_request.password),
        role=ROLE_ADMIN,
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except Exception as e:
        logger.error(f"Initial setup failed: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create admin user")

    logger.info(f"Initial admin created: ID={user.id}")
    return _login_response(user)


@router.post("/auth/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    パスワードリセット要求API

    アカウントの有無を漏らさないよう、結果に関わらず同じメッセージを返す。
    """
    user = get_user_by_email(request.email, db)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    token = generate_password_reset_token(user)
    sent = await send_reset_email(user.email, token, user.user_name)
    if not sent:
        logger.warning(f"Reset email could not be delivered to user {user.id}")

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = verify_password_reset_token(request.token, db)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    try:
        user.password = hash_password(request.password)
        db.commit()
    except Exception as e:
        logger.error(f"Failed to reset password for user {user.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to reset password")

    logger.info(f"Password reset: User={user.id}")
    return MessageResponse(message="Password has been reset")
