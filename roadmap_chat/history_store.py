import json
import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Callable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from sqlalchemy import func
from sqlalchemy.orm import Session

from roadmap_chat.entities import AiHistory

logger = logging.getLogger("roadmap_backend")

USER = "user"
ASSISTANT = "assistant"

ROADMAP_UPDATED_MESSAGE = "Your roadmap has been updated."


@dataclass(frozen=True)
class HistoryEntry:
    turn_index: int
    author: str
    text: str

    def to_message(self) -> BaseMessage:
        if self.author == ASSISTANT:
            return AIMessage(content=self.text)
        return HumanMessage(content=self.text)


class _ConversationLock:
    """threading.Lock wrapper that can be weakly referenced."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


class CorrelationLocks:
    """
    One lock per correlation id, so turns of the same conversation never interleave.
    Distinct correlation ids proceed in parallel.

    Entries are weak: a lock lives only while some request holds a reference to it,
    so the registry does not grow with every correlation id ever seen.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, _ConversationLock] = weakref.WeakValueDictionary()

    def get(self, correlation_id: str) -> _ConversationLock:
        cid = str(correlation_id)
        with self._lock:
            lock = self._locks.get(cid)
            if lock is None:
                lock = _ConversationLock()
                self._locks[cid] = lock
            return lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)


class HistoryStore:
    """
    Persisted, per-conversation chat history with:
    - append-only entries ordered by turn_index
    - a hard cap on the number of stored entries (oldest evicted first)
    """

    def __init__(self, session_factory: Callable[[], Session], cap: int = 10):
        if cap < 1:
            raise ValueError(f"history cap must be >= 1, got: {cap}")
        self.SessionFactory = session_factory
        self.cap = cap

    def append(self, correlation_id: str, author: str, text: str) -> HistoryEntry:
        """
        Append one entry and evict the oldest ones beyond the cap, in a single commit.
        """
        return self._append_entries(correlation_id, [(author, text)])[0]

    def append_turn(self, correlation_id: str, user_text: str, assistant_text: str) -> None:
        """
        Append user+assistant entries as one exchange: both are written or neither is.
        """
        self._append_entries(correlation_id, [(USER, user_text), (ASSISTANT, assistant_text)])

    def _append_entries(self, correlation_id: str, items: list[tuple[str, str]]) -> list[HistoryEntry]:
        for author, _ in items:
            if author not in (USER, ASSISTANT):
                raise ValueError(f"Unknown history author: {author}")

        cid = str(correlation_id)
        session = self.SessionFactory()
        try:
            last = (
                session.query(func.max(AiHistory.turn_index))
                .filter(AiHistory.correlation_id == cid)
                .scalar()
            )
            turn_index = 0 if last is None else int(last) + 1

            written: list[HistoryEntry] = []
            for author, text in items:
                session.add(
                    AiHistory(
                        correlation_id=cid,
                        turn_index=turn_index,
                        author=author,
                        text=text,
                    )
                )
                session.flush()
                written.append(HistoryEntry(turn_index=turn_index, author=author, text=text))
                turn_index += 1

                count = (
                    session.query(func.count(AiHistory.id))
                    .filter(AiHistory.correlation_id == cid)
                    .scalar()
                )
                if count > self.cap:
                    self._evict_oldest_unlocked(session, cid, count - self.cap)

            session.commit()
            return written
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def evict_oldest(self, correlation_id: str, count_to_remove: int) -> int:
        if count_to_remove <= 0:
            return 0
        session = self.SessionFactory()
        try:
            removed = self._evict_oldest_unlocked(session, str(correlation_id), count_to_remove)
            session.commit()
            return removed
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _evict_oldest_unlocked(self, session: Session, cid: str, count_to_remove: int) -> int:
        oldest_ids = [
            row_id
            for (row_id,) in (
                session.query(AiHistory.id)
                .filter(AiHistory.correlation_id == cid)
                .order_by(AiHistory.turn_index.asc(), AiHistory.id.asc())
                .limit(count_to_remove)
                .all()
            )
        ]
        if not oldest_ids:
            return 0
        removed = (
            session.query(AiHistory)
            .filter(AiHistory.id.in_(oldest_ids))
            .delete(synchronize_session=False)
        )
        logger.info("History %s: evicted %d oldest entries (cap=%d)", cid, removed, self.cap)
        return removed

    def load(self, correlation_id: str, max_turns: int) -> list[HistoryEntry]:
        """
        Up to max_turns most recent entries, oldest -> newest.
        """
        if max_turns <= 0:
            return []
        session = self.SessionFactory()
        try:
            rows = (
                session.query(AiHistory)
                .filter(AiHistory.correlation_id == str(correlation_id))
                .order_by(AiHistory.turn_index.desc(), AiHistory.id.desc())
                .limit(max_turns)
                .all()
            )
            entries = [
                HistoryEntry(turn_index=r.turn_index, author=r.author, text=r.text)
                for r in rows
            ]
        finally:
            session.close()
        entries.reverse()
        return entries

    def transcript(self, correlation_id: str) -> list[dict]:
        """
        Stored history as display pairs: [{"message": <user text>, "response": <assistant reply>}, ...]
        """
        pairs: list[dict] = []
        pending_user: str | None = None

        for entry in self.load(correlation_id, self.cap):
            if entry.author == USER:
                if pending_user is not None:
                    pairs.append({"message": pending_user, "response": ""})
                pending_user = entry.text
                continue
            # assistant whose user entry was evicted: nothing to pair it with
            if pending_user is None:
                continue
            pairs.append({"message": pending_user, "response": self._display_response(entry.text)})
            pending_user = None

        if pending_user is not None:
            pairs.append({"message": pending_user, "response": ""})
        return pairs

    def _display_response(self, assistant_text: str) -> str:
        try:
            data = json.loads(assistant_text)
        except ValueError:
            return assistant_text
        if not isinstance(data, dict):
            return assistant_text
        question = data.get("question")
        if isinstance(question, str) and question.strip():
            return question
        return ROADMAP_UPDATED_MESSAGE
