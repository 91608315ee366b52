from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

import config
from database import Database, get_db, to_object_id

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt


def token_for_user(user: dict) -> str:
    return create_access_token(data={"sub": str(user["_id"]), "email": user["email"], "role": user.get("role", "user")})


def get_user_by_email(db: Database, email: str) -> Optional[dict]:
    return db["users"].find_one({"email": email.lower()})


def decode_token(token: str) -> TokenData:
    payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    return TokenData(user_id=payload.get("sub"), role=payload.get("role"))


def get_current_user(token: str = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        token_data = decode_token(token)
    except JWTError:
        raise credentials_exception
    if token_data.user_id is None:
        raise credentials_exception
    try:
        user = db["users"].find_one({"_id": to_object_id(token_data.user_id)})
    except HTTPException:
        raise credentials_exception
    if user is None:
        raise credentials_exception
    return user


def get_current_active_user(current_user: dict = Depends(get_current_user)):
    if current_user.get("status", "active") != "active":
        raise HTTPException(status_code=403, detail="Account is not active")
    return current_user


def get_admin_user(current_user: dict = Depends(get_current_active_user)):
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return current_user


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme),
                      db: Database = Depends(get_db)) -> Optional[dict]:
    """Resolve the bearer token when one is sent; an invalid token means a guest."""
    if not token:
        return None
    try:
        return get_current_user(token, db)
    except HTTPException:
        return None
