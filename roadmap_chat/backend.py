# roadmap_chat/backend.py

import json
import logging
import traceback

from roadmap_chat.DBConnection_hlpr import ConnectionConfig
from roadmap_chat.entities import Base
from roadmap_chat.history_store import CorrelationLocks, HistoryStore
from roadmap_chat.llm_client import ChatLlmClient
from roadmap_chat.negotiation import NegotiationEngine, require_int_id
from roadmap_chat.negotiation_errors import CredentialError, InputError, NegotiationError
from roadmap_chat.roadmap_sync import RoadmapStore

logger = logging.getLogger("roadmap_backend")


class Backend:
    """
    Request entry point for the roadmap chat.

    Every collaborator (session factory, model client, locks) is built once here and
    handed down explicitly; nothing is shared through module globals.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        *,
        session_factory=None,
        chat_llm=None,
    ):
        self.config = config or ConnectionConfig()

        if session_factory is None:
            Base.metadata.create_all(self.config.get_db_engine())
            session_factory = self.config.build_db_session_factory()
        self.SessionFactory = session_factory

        if chat_llm is None:
            try:
                self.config.require_api_key()
            except CredentialError as e:
                logger.warning(f"{e.message}: roadmap_chat requests will fail with credential_error")
            chat_llm = ChatLlmClient(
                self.config.LLM_MODEL,
                api_key=self.config.OPENAI_API_KEY,
                timeout=self.config.LLM_TIMEOUT,
            )

        self.history = HistoryStore(self.SessionFactory, cap=self.config.HISTORY_CAP)
        self.roadmaps = RoadmapStore(self.SessionFactory)
        self.engine = NegotiationEngine(
            history=self.history,
            roadmaps=self.roadmaps,
            chat_llm=chat_llm,
            history_window=self.config.HISTORY_WINDOW,
            locks=CorrelationLocks(),
        )

    def _process_request_data(self, request_data: dict) -> dict:
        """
        Core request handling logic.
        Takes a parsed JSON dict and returns the response_data dict.
        Negotiation errors become {"status": "error", "kind": ..., "category": ...};
        anything else propagates.
        """
        request_type = request_data.get("type")
        payload = request_data.get("payload") or {}

        try:
            preview = json.dumps(request_data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            preview = str(request_data)
        logger.debug(f"process_request request {preview}")

        response_data = {
            "status": "success",
            "message": "",
        }

        try:
            if request_type == "roadmap_chat":
                response_data["data"] = self.handle_roadmap_chat(payload)

            elif request_type == "roadmap_history":
                response_data["data"] = self.handle_roadmap_history(payload)

            elif request_type == "assistant_history":
                response_data["data"] = self.handle_assistant_history(payload)

            else:
                response_data["status"] = "error"
                response_data["message"] = f"Unknown request type: {request_type}"

        except NegotiationError as e:
            logger.info(f"Request {request_type} failed with {e.kind}: {e.message}")
            response_data["status"] = "error"
            response_data["message"] = e.message
            response_data.update(e.to_payload())

        except Exception as e:
            logger.info(f"Error while processing request data: {e}")
            traceback.print_exc()
            raise

        logger.debug(f"response {response_data}")
        return response_data

    # -----------------------
    # Handlers
    # -----------------------

    def handle_roadmap_chat(self, payload: dict) -> dict:
        text = payload.get("text")
        if not isinstance(text, str) or not text.strip():
            raise InputError("text is required")
        roadmap_id = self._require_int(payload, "roadmap_id")
        correlation_id = payload.get("correlation_id") or self.roadmaps.correlation_id_for_roadmap(roadmap_id)
        return self.engine.negotiate_roadmap_edit(
            text,
            roadmap_id,
            correlation_id,
        )

    def handle_roadmap_history(self, payload: dict) -> list[dict]:
        roadmap_id = self._require_int(payload, "roadmap_id")
        return self.history.transcript(self.roadmaps.correlation_id_for_roadmap(roadmap_id))

    def handle_assistant_history(self, payload: dict) -> list[dict]:
        user_id = self._require_int(payload, "user_id")
        return self.history.transcript(self.roadmaps.correlation_id_for_user(user_id))

    def _require_int(self, payload: dict, key: str) -> int:
        return require_int_id(payload.get(key), key)
