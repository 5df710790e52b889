import logging

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from roadmap_chat.base_utils import BaseUtils
from roadmap_chat.chat_prompts import ROADMAP_EDIT_PROMPT
from roadmap_chat.history_store import HistoryEntry
from roadmap_chat.negotiation_models import RoadmapSnapshot

logger = logging.getLogger("roadmap_backend")


class PromptBuilder(BaseUtils):
    """
    Message list for one negotiation turn:
      [instructions + current roadmap] + [history, oldest first] + [new utterance]
    """

    def build(
        self,
        correlation_id: str,
        roadmap: RoadmapSnapshot,
        history: list[HistoryEntry],
        utterance: str,
    ) -> list[BaseMessage]:
        instructions = self.unsafe_string_format(
            ROADMAP_EDIT_PROMPT,
            CURRENT_ROADMAP=roadmap.to_prompt_json(),
        )

        messages: list[BaseMessage] = [SystemMessage(content=instructions)]
        messages.extend(entry.to_message() for entry in history)
        messages.append(HumanMessage(content=utterance))

        logger.debug(
            f"PromptBuilder {correlation_id}: {len(history)} history entries, "
            f"{sum(len(str(m.content)) for m in messages)} chars"
        )
        return messages
