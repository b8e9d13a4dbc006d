"""
Review queue backed by the prs table.

Every call opens its own session. Concurrent callers, in this process or
others, are kept apart only by the database: the (channel, pr) unique index
for submissions and a row lock inside the claim transaction.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from review_queue.models import QueueItem
from review_queue.schemas import QueueEntry
from review_queue.storage import is_unique_violation

logger = logging.getLogger(__name__)


class EnqueueResult(str, Enum):
    """Outcome of QueueManager.enqueue."""
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class QueueManager:
    """
    Enqueue, claim, list, remove and score items in the prs table.

    Args:
        session_factory: sessionmaker bound to the store (see
            storage.build_session_factory)
    """

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    def initialize(self) -> None:
        """
        Drop and recreate the prs table and its unique index.

        Destroys every queued and claimed item. Provisioning only.
        """
        logger.info("[queue] init")
        table = QueueItem.__table__
        with self._sessions.begin() as db:
            conn = db.connection()
            table.drop(conn, checkfirst=True)
            table.create(conn)

    def enqueue(self, pr: str, reporter: str, channel: str) -> EnqueueResult:
        """
        Add `pr` to `channel`'s queue.

        Returns:
            EnqueueResult.CREATED when the row was inserted,
            EnqueueResult.DUPLICATE when (channel, pr) was queued before,
            EnqueueResult.FAILED on any other store error.
        """
        logger.info(f"[queue] push: pr={pr}, reporter={reporter}, channel={channel}")

        with self._sessions() as db:
            try:
                db.add(QueueItem(pr=pr, reporter=reporter, channel=channel))
                db.commit()
                return EnqueueResult.CREATED

            except IntegrityError as e:
                db.rollback()
                if is_unique_violation(e):
                    logger.info(f"[queue] duplicate PR: pr={pr}, channel={channel}")
                    return EnqueueResult.DUPLICATE
                logger.error(f"[queue] push error: pr={pr}, reporter={reporter}, channel={channel}: {e}")
                return EnqueueResult.FAILED

            except Exception as e:
                db.rollback()
                logger.error(f"[queue] push error: pr={pr}, reporter={reporter}, channel={channel}: {e}")
                return EnqueueResult.FAILED

    def claim(
        self,
        user: str,
        channel: Optional[str] = None,
        search: Optional[str] = None
    ) -> Optional[QueueEntry]:
        """
        Assign the oldest eligible queued item to `user`.

        Eligible items are unassigned, not reported by `user`, in `channel`
        when given, and contain `search` in their identifier when given (LIKE
        wildcards in `search` match literally). The candidate row is locked
        with SELECT ... FOR UPDATE so concurrent claimants wait for each other
        and never receive the same item.

        Returns:
            The claimed item with `assigned` set, or None when nothing is
            available or the store failed (the transaction is rolled back).
        """
        query = (
            select(QueueItem)
            .where(QueueItem.assigned.is_(None))
            .where(QueueItem.reporter != user)
        )
        if channel is not None:
            query = query.where(QueueItem.channel == channel)
        if search:
            query = query.where(QueueItem.pr.contains(search, autoescape=True))
        query = query.order_by(QueueItem.id.asc()).limit(1).with_for_update()

        logger.info(f"[queue] pop: user={user}, channel={channel}, search={search}")

        with self._sessions() as db:
            item = None
            try:
                item = db.execute(query).scalars().first()
                if item is None:
                    db.commit()
                    logger.info("[queue] no matching pr for pop")
                    return None

                logger.debug(f"[queue] pop - selected for update: id={item.id}, pr={item.pr}")
                result = db.execute(
                    update(QueueItem)
                    .where(QueueItem.id == item.id)
                    .where(QueueItem.assigned.is_(None))
                    .values(assigned=user)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.warning(f"[queue] pop lost race for id={item.id}")
                    return None

                claimed = QueueEntry.model_validate(item).model_copy(update={"assigned": user})
                db.commit()
                logger.info(f"[queue] pop success: id={claimed.id}, pr={claimed.pr}, assigned={user}")
                return claimed

            except Exception as e:
                db.rollback()
                selected = item.id if item is not None else None
                logger.error(f"[queue] pop failed: user={user}, selected={selected}: {e}")
                return None

    def list(self, channel: Optional[str] = None) -> Optional[list[QueueEntry]]:
        """
        Unassigned items, oldest first, optionally for one channel only.

        Returns:
            The items (possibly empty), or None when the store failed.
        """
        query = select(QueueItem).where(QueueItem.assigned.is_(None))
        if channel:
            query = query.where(QueueItem.channel == channel)
        query = query.order_by(QueueItem.id.asc())

        logger.info(f"[queue] list: channel={channel}")
        try:
            with self._sessions() as db:
                items = db.execute(query).scalars().all()
                return [QueueEntry.model_validate(item) for item in items]
        except Exception as e:
            logger.error(f"[queue] list failed: channel={channel}: {e}")
            return None

    def remove(self, pr: str) -> int:
        """
        Delete every row for `pr`, in any channel, claimed or not.

        Best effort: store errors are logged and reported as 0 rows removed.
        """
        logger.info(f"[queue] remove: pr={pr}")
        with self._sessions() as db:
            try:
                result = db.execute(delete(QueueItem).where(QueueItem.pr == pr))
                db.commit()
                return result.rowcount
            except Exception as e:
                db.rollback()
                logger.error(f"[queue] remove error: pr={pr}: {e}")
                return 0

    def score(self, user: str) -> float:
        """
        Share of `user`'s queue activity spent reviewing.

        claimed / (claimed + submitted); 0.0 when the user has no activity or
        the store failed.
        """
        try:
            with self._sessions() as db:
                pushed = db.execute(
                    select(func.count(QueueItem.id)).where(QueueItem.reporter == user)
                ).scalar() or 0
                popped = db.execute(
                    select(func.count(QueueItem.id)).where(QueueItem.assigned == user)
                ).scalar() or 0
        except Exception as e:
            logger.error(f"[queue] getScore failed: user={user}: {e}")
            return 0.0

        logger.info(f"[queue] getScore: user={user}, pushed={pushed}, popped={popped}")
        total = pushed + popped
        if total > 0:
            return popped / total
        return 0.0
