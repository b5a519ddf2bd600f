from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from elegance.api.deps import get_current_user, get_db, get_settings
from elegance.api.schemas import LoginPayload, RegisterPayload, TokenRead, UserRead
from elegance.core.config import Settings
from elegance.core.errors import EmailTaken, Unauthorized
from elegance.core.security import Role, create_access_token, hash_password, now_utc, verify_password
from elegance.db.models import User

router = APIRouter()  # main.py mounts at /api/auth


def email_registered(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == email).first() is not None


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)) -> dict:
    email = str(payload.email).lower()
    if email_registered(db, email):
        raise EmailTaken()

    user = User(
        email=email,
        name=payload.name,
        password_hash=hash_password(payload.password),
        role=Role.CUSTOMER,
        created_at=now_utc(),
        updated_at=now_utc(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent registration won the unique index
        db.rollback()
        raise EmailTaken()
    db.refresh(user)
    return {"success": True, "data": UserRead.model_validate(user).model_dump(mode="json", by_alias=True)}


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> dict:
    user = db.query(User).filter(User.email == str(payload.email).lower()).first()
    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid credentials")

    access, _ = create_access_token(settings, user.id, user.role)
    token = TokenRead(access_token=access, user=UserRead.model_validate(user))
    return {"success": True, "data": token.model_dump(mode="json", by_alias=True)}


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    return {"success": True, "data": UserRead.model_validate(user).model_dump(mode="json", by_alias=True)}
