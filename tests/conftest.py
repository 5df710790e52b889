import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roadmap_chat.entities import Base, Roadmap, Step, User
from roadmap_chat.negotiation_errors import CredentialError


class FakeChatLlm:
    """Scripted stand-in for ChatLlmClient: returns queued raw texts, records every call."""

    def __init__(self, responses=None, *, has_credentials=True):
        self.responses = list(responses or [])
        self.calls = []
        self.has_credentials = has_credentials

    def ensure_credentials(self) -> None:
        if not self.has_credentials:
            raise CredentialError("OPENAI_API_KEY is not set")

    def invoke(self, messages):
        self.ensure_credentials()
        self.calls.append(list(messages))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def asking_text(question: str) -> str:
    return json.dumps({"isAsking": True, "roadmap": None, "question": question})


def finalizing_text(name: str, description: str, steps: list[tuple[str, str]]) -> str:
    return json.dumps(
        {
            "isAsking": False,
            "roadmap": {
                "name": name,
                "description": description,
                "steps": [{"name": n, "description": d} for n, d in steps],
            },
            "question": None,
        }
    )


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def seeded_roadmap(session_factory):
    """A user owning one roadmap with three steps (the second one completed)."""
    session = session_factory()
    try:
        user = User()
        session.add(user)
        session.flush()
        roadmap = Roadmap(user_id=user.id, name="Moving out", description="Leave the flat")
        session.add(roadmap)
        session.flush()
        for position, (name, completed) in enumerate(
            [("Give notice", False), ("Book movers", True), ("Pack boxes", False)]
        ):
            session.add(
                Step(
                    roadmap_id=roadmap.id,
                    position=position,
                    name=name,
                    description=f"{name} description",
                    completed=completed,
                )
            )
        session.commit()
        return {"roadmap_id": roadmap.id, "roadmap_uuid": roadmap.uuid, "user_id": user.id, "user_uuid": user.uuid}
    finally:
        session.close()


def step_rows(session_factory, roadmap_id):
    session = session_factory()
    try:
        return [
            (s.id, s.name, s.description, s.completed)
            for s in session.query(Step)
            .filter(Step.roadmap_id == roadmap_id)
            .order_by(Step.position, Step.id)
            .all()
        ]
    finally:
        session.close()
