"""API Dependencies - Authentication"""
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError

from domain.auth import User, UserInDB
from domain.enums import Role
from infrastructure.security import decode_access_token, get_password_hash
from api.schemas import TokenData

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Built-in accounts; staff accounts are scoped to the business units listed
_fake_users_db = {
    "admin": {
        "username": "admin",
        "full_name": "Admin User",
        "email": "admin@example.com",
        "plain_password": "admin123",
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174000",
        "role": Role.ADMIN,
        "business_unit_ids": [],
    },
    "frontdesk": {
        "username": "frontdesk",
        "full_name": "Front Desk",
        "email": "frontdesk@example.com",
        "plain_password": "frontdesk123",
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174001",
        "role": Role.FRONT_DESK,
        "business_unit_ids": [],
    },
    "housekeeping": {
        "username": "housekeeping",
        "full_name": "Housekeeping",
        "email": "housekeeping@example.com",
        "plain_password": "housekeeping123",
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174002",
        "role": Role.HOUSEKEEPING,
        "business_unit_ids": [],
    },
}

fake_users_db = _fake_users_db

# Cache for hashed passwords
_password_hash_cache = {}


def _get_hashed_password(username: str) -> str:
    """Lazily hash passwords on first access"""
    if username not in _password_hash_cache:
        user = _fake_users_db.get(username)
        if user and "plain_password" in user:
            _password_hash_cache[username] = get_password_hash(user["plain_password"])
    return _password_hash_cache.get(username, "")


def get_user(db, username: str):
    if username in db:
        user_dict = db[username].copy()
        if "plain_password" in user_dict:
            user_dict["hashed_password"] = _get_hashed_password(username)
            del user_dict["plain_password"]
        return UserInDB(**user_dict)
    return None


async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    """Resolve the acting principal for the request.

    The token's role claim must still match the account; a token issued
    before a role change is refused.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        token_data = TokenData(username=payload.get("sub"), role=payload.get("role"))
    except (JWTError, ValidationError):
        raise credentials_exception
    if token_data.username is None:
        raise credentials_exception

    account = get_user(_fake_users_db, username=token_data.username)
    if account is None or (token_data.role is not None and token_data.role != account.role):
        raise credentials_exception
    return User(**account.model_dump(exclude={"hashed_password"}))


async def get_current_active_user(current_user: User = Depends(get_current_user)):
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
