# roadmap_chat/roadmap_sync.py

import logging
from typing import Callable

from sqlalchemy.orm import Session

from roadmap_chat.entities import Roadmap, Step, User
from roadmap_chat.negotiation_errors import NotFoundError
from roadmap_chat.negotiation_models import RoadmapSnapshot, RoadmapStep

logger = logging.getLogger("roadmap_backend")


class RoadmapStore:
    """
    SQLAlchemy access to persisted roadmaps and their steps.
    Roadmaps are created elsewhere; this store only reads and rewrites them.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.SessionFactory = session_factory

    def _get_roadmap_unlocked(self, session: Session, roadmap_id: int) -> Roadmap:
        roadmap = (
            session.query(Roadmap)
            .filter(Roadmap.id == int(roadmap_id))
            .one_or_none()
        )
        if roadmap is None:
            raise NotFoundError(f"Roadmap not found: {roadmap_id}")
        return roadmap

    def get_snapshot(self, roadmap_id: int) -> RoadmapSnapshot:
        session = self.SessionFactory()
        try:
            roadmap = self._get_roadmap_unlocked(session, roadmap_id)
            return RoadmapSnapshot(
                name=roadmap.name,
                description=roadmap.description or "",
                steps=[
                    RoadmapStep(name=s.name, description=s.description or "")
                    for s in roadmap.steps
                ],
            )
        finally:
            session.close()

    def correlation_id_for_roadmap(self, roadmap_id: int) -> str:
        session = self.SessionFactory()
        try:
            return str(self._get_roadmap_unlocked(session, roadmap_id).uuid)
        finally:
            session.close()

    def correlation_id_for_user(self, user_id: int) -> str:
        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.id == int(user_id)).one_or_none()
            if user is None:
                raise NotFoundError(f"User not found: {user_id}")
            return str(user.uuid)
        finally:
            session.close()

    def replace_roadmap(self, roadmap_id: int, snapshot: RoadmapSnapshot) -> list[int]:
        """
        One transaction: overwrite name/description, delete every step, insert the new
        steps in array order. Either all of it is committed or none of it.
        Returns the ids of the inserted steps.
        """
        session = self.SessionFactory()
        try:
            roadmap = self._get_roadmap_unlocked(session, roadmap_id)

            roadmap.name = snapshot.name
            roadmap.description = snapshot.description

            removed = (
                session.query(Step)
                .filter(Step.roadmap_id == roadmap.id)
                .delete(synchronize_session=False)
            )

            new_steps = [
                Step(
                    roadmap_id=roadmap.id,
                    position=position,
                    name=step.name,
                    description=step.description,
                )
                for position, step in enumerate(snapshot.steps)
            ]
            # one add/flush per step so ids follow array order too
            for step in new_steps:
                session.add(step)
                session.flush()

            session.commit()
            logger.info(
                f"Roadmap {roadmap_id}: replaced {removed} steps with {len(new_steps)} steps"
            )
            return [s.id for s in new_steps]
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class RoadmapSynchronizer:
    """
    Applies a committed RoadmapSnapshot to the persisted roadmap by FULL replacement.

    Step-level data that the snapshot does not carry (completion flag, ended_at)
    is discarded with the old steps; no merge is attempted.
    """

    def __init__(self, store: RoadmapStore):
        self.store = store

    def apply(self, roadmap: RoadmapSnapshot, target_roadmap_id: int) -> list[int]:
        return self.store.replace_roadmap(target_roadmap_id, roadmap)
