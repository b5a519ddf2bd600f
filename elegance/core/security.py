from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Tuple
import enum
import jwt

from elegance.core.config import Settings

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def now_utc() -> datetime: return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    MANAGE_CATALOG = "manage_catalog"


ROLE_CAPABILITIES = {
    Role.CUSTOMER: frozenset(),
    Role.ADMIN: frozenset({Capability.MANAGE_CATALOG}),
}

def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def create_access_token(settings: Settings, user_id: int, role: Role) -> Tuple[str, datetime]:
    exp = now_utc() + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': str(user_id), 'role': role.value, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(settings: Settings, token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
