"""
Database models for mailsweep.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey,
    Boolean, Float, create_engine, Index
)
from sqlalchemy.orm import relationship, sessionmaker, declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Owner of one or more mailbox accounts and of the category labels."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime, default=func.now())

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    categories = relationship("Category", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(email='{self.email}')>"


class Account(Base):
    """External mailbox credential set."""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    email_address = Column(String(255), unique=True, nullable=False)
    provider = Column(String(50), nullable=False, default='gmail')
    refresh_token = Column(Text, nullable=False)  # sealed
    access_token = Column(Text, nullable=True)  # sealed
    token_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    deactivated_reason = Column(String(255))
    last_synced_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="accounts")
    messages = relationship("Message", back_populates="account", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_active_accounts', 'is_active'),
    )

    def access_token_expired(self, now: datetime = None) -> bool:
        """True when there is no access token or its expiry has passed."""
        if not self.access_token:
            return True
        if self.token_expires_at is None:
            return False
        return self.token_expires_at <= (now or utcnow())

    def deactivate(self, reason: str):
        """Soft-deactivate the account (revocation or limit violations)."""
        self.is_active = False
        self.deactivated_reason = reason

    def __repr__(self):
        # Never render token columns
        return f"<Account(email='{self.email_address}', active={self.is_active})>"


class Category(Base):
    """User-defined classification label."""
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, default='')
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="categories")
    messages = relationship("Message", back_populates="category")

    __table_args__ = (
        Index('uq_user_category_name', 'user_id', 'name', unique=True),
    )

    def __repr__(self):
        return f"<Category(name='{self.name}')>"


class Message(Base):
    """Canonical normalized email."""
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False)
    external_id = Column(String(255), unique=True, nullable=False)  # provider message id
    subject = Column(Text, default='')
    sender = Column(String(512), default='')
    body = Column(Text, default='')
    body_truncated = Column(Boolean, default=False, nullable=False)
    received_at = Column(DateTime)
    unsubscribe_target = Column(Text)
    unsubscribe_method = Column(String(20), default='none')  # header, link, none
    archived = Column(Boolean, default=False, nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id', ondelete='SET NULL'), nullable=True)
    classification_confidence = Column(Float)
    summary = Column(Text)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    account = relationship("Account", back_populates="messages")
    category = relationship("Category", back_populates="messages")
    unsubscribe_attempts = relationship(
        "UnsubscribeAttempt", back_populates="message",
        cascade="all, delete-orphan", order_by="UnsubscribeAttempt.attempted_at"
    )

    __table_args__ = (
        Index('idx_account_received', 'account_id', 'received_at'),
        Index('idx_message_category', 'category_id'),
    )

    @property
    def latest_unsubscribe_attempt(self):
        """The authoritative current unsubscribe state (latest by timestamp)."""
        if not self.unsubscribe_attempts:
            return None
        return max(self.unsubscribe_attempts, key=lambda a: (a.attempted_at or datetime.min, a.id or 0))

    def __repr__(self):
        subject = (self.subject or '')[:50]
        return f"<Message(external_id='{self.external_id}', subject='{subject}...')>"


class UnsubscribeAttempt(Base):
    """One automated-unsubscribe execution against a Message."""
    __tablename__ = 'unsubscribe_attempts'

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey('messages.id'), nullable=False)
    status = Column(String(20), nullable=False, default='pending')  # pending, success, failed
    method = Column(String(50), nullable=False)
    error_message = Column(Text)
    evidence_path = Column(Text)
    attempted_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime)

    # Relationships
    message = relationship("Message", back_populates="unsubscribe_attempts")

    __table_args__ = (
        Index('idx_attempt_message', 'message_id', 'attempted_at'),
    )

    def __repr__(self):
        return f"<UnsubscribeAttempt(message_id={self.message_id}, status='{self.status}')>"


def create_database_engine(database_url: str = "sqlite:///mailsweep.db"):
    """Create and return a database engine."""
    engine = create_engine(
        database_url,
        echo=False,  # Set to True for SQL debugging
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )
    return engine


def create_tables(engine):
    """Create all tables in the database."""
    Base.metadata.create_all(engine)


def get_session_maker(engine):
    """Get a session maker for the database."""
    return sessionmaker(bind=engine)
