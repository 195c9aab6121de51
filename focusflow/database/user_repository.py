"""Repository for User database operations."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from focusflow.database.models import UserDB
from focusflow.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_by_email(self, email: str) -> Optional[User]:
        user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.to_pydantic() if user_db else None

    def create_or_update(self, user: User) -> User:
        """Upsert a user keyed by id.

        Args:
            user: User object to create or update

        Returns:
            Stored User object
        """
        user_db = self.db.query(UserDB).filter(UserDB.id == user.id).first()
        action = "update" if user_db else "create"
        try:
            if user_db:
                user_db.email = user.email
                user_db.name = user.name
                user_db.updated_at = user.updated_at
            else:
                user_db = UserDB.from_pydantic(user)
                self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action} user {user.id}: {type(e).__name__}: {str(e)}")
            raise
        logger.debug(f"{action.capitalize()}d user {user.id}")
        return user_db.to_pydantic()
