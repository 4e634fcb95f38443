from fastapi import Depends, HTTPException, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from auth import get_user_by_id
from config import SECRET_KEY, ALGORITHM
from database import get_db
from models import User
from services.access import Principal
from sqlalchemy.orm import Session
from typing import Optional

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _user_from_token(token: str, db: Session) -> Optional[User]:
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    user_id = payload.get("sub")
    if user_id is None:
        return None
    try:
        return get_user_by_id(int(user_id), db)
    except (TypeError, ValueError):
        return None


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        user = _user_from_token(credentials.credentials, db)
    except JWTError:
        raise credentials_exception

    if user is None:
        raise credentials_exception
    return user


def get_current_user_optional(credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security), db: Session = Depends(get_db)) -> Optional[User]:
    """
    オプション認証関数

    認証情報がある場合はユーザーを返し、ない場合はNoneを返す。
    エラーは発生させない（公開ギャラリーの匿名閲覧者向け）。

    Args:
        credentials: JWTトークン（オプション）

    Returns:
        User | None: 認証済みユーザーまたはNone
    """
    if credentials is None:
        return None

    try:
        return _user_from_token(credentials.credentials, db)
    except JWTError:
        return None


def get_principal(
    current_user: Optional[User] = Depends(get_current_user_optional),
    x_gallery_password: Optional[str] = Header(None),
) -> Principal:
    """
    アクセス判定用のプリンシパルを取得する

    認証済みならユーザー、未認証なら匿名訪問者として扱う。
    匿名訪問者は X-Gallery-Password ヘッダーでギャラリーのパスワードを提示できる。
    """
    if current_user is not None:
        return Principal.from_user(current_user)
    return Principal.anonymous(password=x_gallery_password)


def get_authenticated_principal(current_user: User = Depends(get_current_user)) -> Principal:
    """認証必須のエンドポイント用プリンシパル"""
    return Principal.from_user(current_user)
