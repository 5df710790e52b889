import logging
import time
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from roadmap_chat.chat_prompts import ROADMAP_OUTPUT_SCHEMA, ROADMAP_OUTPUT_SCHEMA_NAME
from roadmap_chat.negotiation_errors import CredentialError, ServiceError

logger = logging.getLogger("roadmap_backend")


class ChatLlmClient:
    """
    Chat-style gateway to the generative text service:

        raw_text = chat_llm.invoke([SystemMessage(...), HumanMessage(...), AIMessage(...), ...])

    Under the hood: OpenAI Responses API with input=[{role, content}, ...] and a strict
    json_schema text format. One call per invoke; no retries (retry policy belongs to the caller).

    Failures:
    - CredentialError: no API key configured (checked before any network I/O) or key rejected
    - ServiceError: timeout, connection failure, non-success status
    Successful responses are returned as raw text whatever their shape.
    """

    def __init__(
        self,
        model_name: str,
        *,
        api_key: str | None,
        timeout: float | None = None,
        client: Any = None,
    ):
        if not model_name or not model_name.strip():
            raise ValueError("model_name must be a non-empty string")
        self.model_name = model_name.strip()
        self._api_key = (api_key or "").strip()
        self._timeout = timeout
        self._client = client
        self.last_usage: Optional[Dict[str, int]] = None

    def _get_client(self):
        if self._client is None:
            client_kwargs: Dict[str, Any] = {"api_key": self._api_key, "max_retries": 0}
            if self._timeout is not None:
                client_kwargs["timeout"] = self._timeout
            self._client = OpenAI(**client_kwargs)
        return self._client

    def _merge_usage(self, resp: Any) -> None:
        if resp is None:
            return
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        inc = {
            "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
        }
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _to_openai_messages(self, messages: List[BaseMessage]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "developer"
            elif isinstance(m, HumanMessage):
                role = "user"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out

    def _text_format(self) -> Dict[str, Any]:
        return {
            "format": {
                "type": "json_schema",
                "name": ROADMAP_OUTPUT_SCHEMA_NAME,
                "schema": ROADMAP_OUTPUT_SCHEMA,
                "strict": True,
            }
        }

    def ensure_credentials(self) -> None:
        if not self._api_key and self._client is None:
            raise CredentialError("OPENAI_API_KEY is not set")

    def invoke(self, messages: List[BaseMessage]) -> str:
        """
        Single synchronous call. Returns the raw output text.
        """
        self.ensure_credentials()

        oai_messages = self._to_openai_messages(messages)
        start_time = time.time()
        try:
            resp = self._get_client().responses.create(
                model=self.model_name,
                input=oai_messages,
                text=self._text_format(),
            )
        except openai.AuthenticationError as e:
            raise CredentialError(f"Generative service rejected the credential: {e.message}") from e
        except openai.APITimeoutError as e:
            raise ServiceError(
                f"Generative service timed out after {time.time() - start_time:.2f}s",
                diagnostic=str(e),
            ) from e
        except openai.APIConnectionError as e:
            raise ServiceError("Could not reach the generative service", diagnostic=str(e)) from e
        except openai.APIStatusError as e:
            raise ServiceError(
                f"Generative service returned status {e.status_code}",
                diagnostic=self._status_diagnostic(e),
            ) from e

        self._merge_usage(resp)
        logger.debug(
            f"[CHAT-LLM] model={self.model_name} elapsed={time.time() - start_time:.2f}s usage={self.last_usage}"
        )

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def _status_diagnostic(self, e: "openai.APIStatusError") -> str:
        body = getattr(e, "body", None)
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
        return str(getattr(e, "message", "") or e)
