"""
At-most-once gate for inbound events, backed by the msg table.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from review_queue.models import LockEntry
from review_queue.schemas import InboundEvent
from review_queue.storage import is_unique_violation

logger = logging.getLogger(__name__)


class EventLocker:
    """
    Admits each (user, ts) event once across every process sharing the store.

    Args:
        session_factory: sessionmaker bound to the store
    """

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    def initialize(self) -> None:
        """Drop and recreate the msg table and its (msg_user, msg_ts) index."""
        logger.info("[locker] init")
        table = LockEntry.__table__
        with self._sessions.begin() as db:
            conn = db.connection()
            table.drop(conn, checkfirst=True)
            table.create(conn)

    def admit(self, event: InboundEvent) -> bool:
        """
        Record `event` as taken.

        Returns:
            True for the first caller to present this (user, ts) pair. False
            for every later caller, and also when the store fails: skipping
            an event is preferred over handling it twice.
        """
        logger.info(
            f"[locker] locking: channel={event.channel}, type={event.type}, "
            f"user={event.user}, ts={event.ts.isoformat()}"
        )
        logger.debug(f"[locker] text={event.text!r}")

        with self._sessions() as db:
            try:
                db.add(LockEntry(
                    msg_channel=event.channel,
                    msg_text=event.text,
                    msg_type=event.type,
                    msg_user=event.user,
                    msg_ts=event.ts,
                ))
                db.commit()
                return True

            except IntegrityError as e:
                db.rollback()
                if is_unique_violation(e):
                    logger.info(f"[locker] already locked: user={event.user}, ts={event.ts.isoformat()}")
                else:
                    logger.error(f"[locker] lock rejected: user={event.user}, ts={event.ts.isoformat()}: {e}")
                return False

            except Exception as e:
                db.rollback()
                logger.error(f"[locker] error: user={event.user}, ts={event.ts.isoformat()}: {e}")
                return False
