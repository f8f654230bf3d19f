"""
Narrow persistence interface used by the sync and unsubscribe pipelines.
"""

import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from ..exceptions import NotFoundError
from .models import Account, Category, Message, UnsubscribeAttempt

logger = logging.getLogger(__name__)


class MessageStore:
    """Query and persist accounts, categories and messages for one session."""

    def __init__(self, session: Session):
        self.session = session

    def get_account(self, account_id: int) -> Account:
        account = self.session.query(Account).filter_by(id=account_id).first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found", {'account_id': account_id})
        return account

    def active_accounts(self) -> List[Account]:
        return self.session.query(Account).filter(Account.is_active.is_(True)).order_by(Account.id).all()

    def categories_for_user(self, user_id: int) -> List[Category]:
        """Fetch the candidate classification labels for a user."""
        return self.session.query(Category).filter_by(user_id=user_id).order_by(Category.id).all()

    def existing_external_ids(self, external_ids: Iterable[str]) -> Set[str]:
        """Return which of the given provider ids are already stored (single query)."""
        ids = list(external_ids)
        if not ids:
            return set()
        rows = self.session.query(Message.external_id).filter(
            Message.external_id.in_(ids)
        ).all()
        return {row.external_id for row in rows}

    def persist_message(self, message: Message) -> Message:
        """
        Insert a new message.

        Raises sqlalchemy.exc.IntegrityError when the external id already exists;
        the session is rolled back before the error propagates.
        """
        self.session.add(message)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return message

    def get_message(self, message_id: int) -> Message:
        message = self.session.query(Message).filter_by(id=message_id).first()
        if not message:
            raise NotFoundError(f"Message {message_id} not found", {'message_id': message_id})
        return message

    def recategorize(self, message_id: int, category_id: Optional[int]) -> Message:
        """Manually assign (or clear) a message's category."""
        message = self.get_message(message_id)
        if category_id is not None:
            category = self.session.query(Category).filter_by(id=category_id).first()
            if not category:
                raise NotFoundError(f"Category {category_id} not found", {'category_id': category_id})
        message.category_id = category_id
        self.session.commit()
        return message

    def delete_message(self, message_id: int):
        """Delete a message; its unsubscribe attempts cascade."""
        message = self.get_message(message_id)
        self.session.delete(message)
        self.session.commit()
        logger.info(f"Deleted message {message_id}")

    def latest_attempt(self, message_id: int) -> Optional[UnsubscribeAttempt]:
        return self.session.query(UnsubscribeAttempt).filter_by(
            message_id=message_id
        ).order_by(UnsubscribeAttempt.attempted_at.desc(), UnsubscribeAttempt.id.desc()).first()
