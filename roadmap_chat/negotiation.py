# roadmap_chat/negotiation.py

"""
Roadmap negotiation engine.

One request = one sequential pipeline, run under the conversation's lock:

    load recent history -> build prompt -> call the model -> parse
        -> Asking:     nothing persisted except the exchange
        -> Finalizing: full replacement of the roadmap, then the exchange
        -> Malformed:  typed error, nothing persisted at all

The branch is decided only by what the model answered on this turn: there is no
stored machine state between turns, the history carries the context.
"""

import json
import logging

from roadmap_chat.history_store import CorrelationLocks, HistoryStore
from roadmap_chat.negotiation_errors import InputError
from roadmap_chat.negotiation_models import Asking, Finalizing, Malformed
from roadmap_chat.prompt_builder import PromptBuilder
from roadmap_chat.response_parser import ResponseParser
from roadmap_chat.roadmap_sync import RoadmapStore, RoadmapSynchronizer

logger = logging.getLogger("roadmap_backend")


class NegotiationEngine:
    def __init__(
        self,
        *,
        history: HistoryStore,
        roadmaps: RoadmapStore,
        chat_llm,
        history_window: int = 10,
        locks: CorrelationLocks | None = None,
        prompt_builder: PromptBuilder | None = None,
        parser: ResponseParser | None = None,
    ):
        self.history = history
        self.roadmaps = roadmaps
        self.synchronizer = RoadmapSynchronizer(roadmaps)
        self.chat_llm = chat_llm
        self.history_window = history_window
        self.locks = locks or CorrelationLocks()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.parser = parser or ResponseParser()

    def negotiate_roadmap_edit(self, utterance, roadmap_id, correlation_id) -> dict:
        """
        Returns {"isAsking": bool, "roadmap": dict | None, "question": str | None}.

        Raises (before any network call): InputError, CredentialError, NotFoundError.
        Raises (after the model call): ServiceError, ParseError, SchemaViolation.
        """
        user_text, roadmap_id = self._validate_inputs(utterance, roadmap_id, correlation_id)
        cid = str(correlation_id)

        self.chat_llm.ensure_credentials()

        with self.locks.get(cid):
            current = self.roadmaps.get_snapshot(roadmap_id)
            recent = self.history.load(cid, self.history_window)
            messages = self.prompt_builder.build(cid, current, recent, user_text)

            raw = self.chat_llm.invoke(messages)
            logger.debug(f"Negotiation {cid}: raw model output\n{raw}")

            outcome = self.parser.parse(raw)

            if isinstance(outcome, Malformed):
                logger.info(f"Negotiation {cid}: {outcome.error.kind}, exchange not recorded")
                raise outcome.error

            if isinstance(outcome, Finalizing):
                logger.info(
                    f"Negotiation {cid}: finalizing roadmap {roadmap_id} "
                    f"with {len(outcome.roadmap.steps)} steps"
                )
                self.synchronizer.apply(outcome.roadmap, roadmap_id)
            elif isinstance(outcome, Asking):
                logger.info(f"Negotiation {cid}: asking for clarification")

            result = outcome.to_dict()
            try:
                self.history.append_turn(
                    cid,
                    user_text,
                    json.dumps(result, ensure_ascii=False),
                )
            except Exception:
                if isinstance(outcome, Finalizing):
                    # the replacement is already committed; only the exchange is missing
                    logger.error(
                        f"Negotiation {cid}: roadmap {roadmap_id} was replaced "
                        f"but the exchange could not be recorded"
                    )
                raise
            return result

    def _validate_inputs(self, utterance, roadmap_id, correlation_id) -> tuple[str, int]:
        if not isinstance(utterance, str) or not utterance.strip():
            raise InputError("utterance is required")
        roadmap_id = require_int_id(roadmap_id, "roadmap id")
        if correlation_id is None or not str(correlation_id).strip():
            raise InputError("correlation id is required")
        return utterance.strip(), roadmap_id


def require_int_id(value, label: str) -> int:
    """
    An entity id is an int or a string of digits. Anything else (bool, float, "1.9")
    is rejected rather than truncated onto another row.
    """
    if value is None:
        raise InputError(f"{label} is required")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise InputError(f"{label} must be an integer, got: {value!r}")
