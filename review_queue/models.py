"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func

from review_queue.storage import Base


class QueueItem(Base):
    """
    A submitted pull request waiting for (or taken by) a reviewer.

    Table: prs
    Unique: (channel, pr) - a PR can be queued once per channel, ever
    """
    __tablename__ = "prs"
    __table_args__ = (
        Index("prs_channel_pr", "channel", "pr", unique=True),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(String(100), nullable=False)
    pr = Column(String(100), nullable=False)
    reporter = Column(String(100), nullable=False)
    # NULL while queued; set once when claimed
    assigned = Column(String(100), nullable=True, default=None)
    queued = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class LockEntry(Base):
    """
    Marker that an inbound event has been taken for processing.

    Table: msg
    Unique: (msg_user, msg_ts) - one admission per sender and timestamp
    """
    __tablename__ = "msg"
    __table_args__ = (
        Index("msg_user_ts", "msg_user", "msg_ts", unique=True),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    msg_channel = Column(String(100), nullable=False)
    msg_text = Column(Text, nullable=False)
    msg_type = Column(String(100), nullable=False)
    msg_user = Column(String(100), nullable=False)
    msg_ts = Column(DateTime, nullable=False)
