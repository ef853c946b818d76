"""User accounts: login, admin-gated registration and logout."""
from typing import Annotated, Optional

from fastapi import Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from greenhouse.auth import create_token, decode_token, hash_password, verify_password
from greenhouse.core.module import Module
from greenhouse.database import get_db
from greenhouse.errors import AlreadyExists, InsufficientPermissions, InvalidCredentials, NotFound
from greenhouse.models import User, UserType
from greenhouse.schemas import UserOut


class CredentialsQuery(BaseModel):
    email: str
    password: str


class RegisterQuery(CredentialsQuery):
    token: str
    type: UserType = UserType.USER


class LogoutQuery(BaseModel):
    token: str


def create_user(db: Session, email: str, password: str, user_type: UserType, rounds: int) -> User:
    if db.query(User.id).filter(User.email == email).first() is not None:
        raise AlreadyExists(f"A user with email '{email}' already exists")

    user = User(email=email, password_hash=hash_password(password, rounds), type=user_type)
    db.add(user)
    db.commit()
    return user


class UserModule(Module):
    name = "UserModule"

    def __init__(self, app):
        super().__init__(app)

        self.http("POST", "/login", app.rate_limited(self.login))
        self.http("POST", "/register", app.rate_limited(self.register))
        self.http("POST", "/logout", self.logout)

    async def init(self) -> None:
        email, password = self.settings.admin_email, self.settings.admin_password
        if not email or not password:
            return
        with self.session() as db:
            if db.query(User.id).filter(User.email == email).first() is None:
                create_user(db, email, password, UserType.ADMIN, self.settings.salt_rounds)
                self.logger.info(f"Admin user '{email}' created")

    def user_from_token(self, db: Session, token: str) -> User:
        payload = decode_token(token, self.settings.secret)
        if payload is None:
            raise InvalidCredentials("Invalid token")
        user = db.get(User, payload.get("id"))
        if user is None:
            raise NotFound("No user matches the token", error="No user found")
        return user

    def authenticate(self, db: Session, email: str, password: str) -> Optional[User]:
        """Check the credentials and store a fresh token on the user; None when they do not match."""
        user = db.query(User).filter(User.email == email).first()
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.token = create_token(user, self.settings.secret)
        db.commit()
        return user

    # ---- Routes -----------------------------------------------------------

    def login(self, request: Request, query: Annotated[CredentialsQuery, Query()], db: Session = Depends(get_db)):
        user = self.authenticate(db, query.email, query.password)
        if user is None:
            raise InvalidCredentials("Wrong email or password")
        return {"message": "success", "user": UserOut.model_validate(user).dump()}

    def register(self, request: Request, query: Annotated[RegisterQuery, Query()], db: Session = Depends(get_db)):
        admin = self.user_from_token(db, query.token)
        if admin.token != query.token:
            raise InvalidCredentials("Token is no longer valid, please log in again")
        if admin.type != UserType.ADMIN:
            raise InsufficientPermissions("Only administrators can register users")

        user = create_user(db, query.email, query.password, query.type, self.settings.salt_rounds)
        self.logger.info(f"User '{user.email}' registered by '{admin.email}'")
        return {"message": "success", "user": UserOut.model_validate(user).dump()}

    def logout(self, query: Annotated[LogoutQuery, Query()], db: Session = Depends(get_db)):
        user = self.user_from_token(db, query.token)
        user.token = None
        db.commit()
        return {"message": "success", "user": UserOut.model_validate(user).dump()}
