from __future__ import annotations

import json
from dataclasses import dataclass, field

from roadmap_chat.negotiation_errors import NegotiationError


@dataclass(frozen=True)
class RoadmapStep:
    name: str
    description: str

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description}


@dataclass(frozen=True)
class RoadmapSnapshot:
    """Name, description and ordered steps of a roadmap, without persistence identity."""

    name: str
    description: str
    steps: list[RoadmapStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
        }

    def to_prompt_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class Asking:
    question: str

    is_asking = True

    def to_dict(self) -> dict:
        return {"isAsking": True, "roadmap": None, "question": self.question}


@dataclass(frozen=True)
class Finalizing:
    roadmap: RoadmapSnapshot

    is_asking = False

    def to_dict(self) -> dict:
        return {"isAsking": False, "roadmap": self.roadmap.to_dict(), "question": None}


@dataclass(frozen=True)
class Malformed:
    """Model output that could not be decoded or broke the output contract."""

    error: NegotiationError
    raw_text: str


ParseOutcome = Asking | Finalizing | Malformed
