from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
import jwt

from elegance.core.config import Settings
from elegance.core.errors import Forbidden, Unauthorized
from elegance.core.security import Capability, decode_token, has_capability
from elegance.db.session import SessionLocal
from elegance.db.models import User
from elegance.services.reconciliation import OrderReconciler

security = HTTPBearer(auto_error=False)

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_reconciler(request: Request) -> OrderReconciler:
    return request.app.state.reconciler

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if not creds: raise Unauthorized('Not authenticated, token not provided')
    try:
        payload = decode_token(settings, creds.credentials)
    except jwt.PyJWTError:
        raise Unauthorized('Invalid or expired token')
    if payload.get('type') != 'access':
        raise Unauthorized('Invalid access token')
    try:
        user_id = int(payload.get('sub'))
    except (TypeError, ValueError):
        raise Unauthorized('Invalid access token')
    user = db.get(User, user_id)
    if not user or not user.is_active: raise Unauthorized('User not found or inactive')
    return user

def require_capability(capability: Capability):
    def _checker(user: User = Depends(get_current_user)):
        if not has_capability(user.role, capability):
            raise Forbidden(f'Role {user.role.value} may not {capability.value}')
        return user
    return _checker
