import logging
from typing import Any, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.models.token import UserToken, utcnow

logger = logging.getLogger(__name__)


def get_user_token(db: Session, user_id: str) -> Optional[UserToken]:
    statement = select(UserToken).where(UserToken.user_id == user_id)
    return db.exec(statement).first()


def _apply(token: UserToken, fields: dict) -> UserToken:
    for name, value in fields.items():
        setattr(token, name, value)
    token.updated_at = utcnow()
    return token


def upsert_user_token(db: Session, user_id: str, **fields: Any) -> UserToken:
    """
    Create or overwrite the credential for user_id.
    Only the given fields change on an existing row; updated_at always moves.
    """
    token = get_user_token(db, user_id)

    if token is None:
        token = _apply(UserToken(user_id=user_id, **fields), {})
        db.add(token)
        try:
            db.commit()
        except IntegrityError:
            # another request inserted the same user first, overwrite it
            db.rollback()
            logger.info(f"concurrent insert for {user_id}, updating instead")
            token = _apply(get_user_token(db, user_id), fields)
            db.add(token)
            db.commit()
    else:
        _apply(token, fields)
        db.add(token)
        db.commit()

    db.refresh(token)
    return token
