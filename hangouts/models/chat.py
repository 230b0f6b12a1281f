from sqlalchemy import CheckConstraint, Column, Integer, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from hangouts.core.database import Base


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Canonical (min, max) ordering of the pair; uniqueness lives here
    user_low_id = Column(Integer, nullable=False)
    user_high_id = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.id",
    )

    # Chat ids are never reused; topics are keyed by them
    __table_args__ = (
        UniqueConstraint('user_low_id', 'user_high_id', name='unique_chat_pair'),
        CheckConstraint('sender_id != recipient_id', name='chat_distinct_participants'),
        {"sqlite_autoincrement": True},
    )

    @property
    def participant_ids(self):
        return (self.sender_id, self.recipient_id)

    def involves(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def other_participant(self, user_id: int) -> int:
        return self.recipient_id if user_id == self.sender_id else self.sender_id


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    body = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    chat = relationship("Chat", back_populates="messages")
    author = relationship("User")

    # Indexes for efficient querying
    __table_args__ = (
        Index('idx_chat_created', 'chat_id', 'created_at'),
    )
