import json
import logging

from roadmap_chat.negotiation_errors import ParseError, SchemaViolation
from roadmap_chat.negotiation_models import (
    Asking,
    Finalizing,
    Malformed,
    ParseOutcome,
    RoadmapSnapshot,
    RoadmapStep,
)

logger = logging.getLogger("roadmap_backend")


class ResponseParser:
    """
    Decodes raw model text into an Asking / Finalizing result.

    Malformed output is an expected outcome, not an exceptional one: parse() never
    raises for bad model text, it returns Malformed carrying a ParseError or a
    SchemaViolation (with the offending field).

    Decoding:
      1. strict json.loads of the whole text
      2. fallback: the substring from the first '{' to the last '}' (inclusive)
    """

    def parse(self, raw_text: str) -> ParseOutcome:
        data, err = self._load_json(raw_text)
        if err:
            logger.info(f"ResponseParser: undecodable model output: {err}")
            return Malformed(error=ParseError(err), raw_text=raw_text)

        violation = self._find_violation(data)
        if violation is not None:
            logger.info(f"ResponseParser: contract violation on '{violation.field}': {violation.message}")
            return Malformed(error=violation, raw_text=raw_text)

        if data["isAsking"]:
            return Asking(question=data["question"])

        roadmap = data["roadmap"]
        return Finalizing(
            roadmap=RoadmapSnapshot(
                name=roadmap["name"],
                description=roadmap["description"],
                steps=[
                    RoadmapStep(name=s["name"], description=s["description"])
                    for s in roadmap["steps"]
                ],
            )
        )

    # -----------------------
    # Decoding
    # -----------------------

    def _load_json(self, raw_text: str) -> tuple[object, str]:
        text = raw_text or ""
        try:
            return json.loads(text), ""
        except ValueError as e:
            err = f"direct decode failed: {e}"

        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end < start:
            return None, err + "\n--\nno JSON object delimiters found"

        try:
            return json.loads(text[start:end + 1]), ""
        except ValueError as e:
            return None, err + f"\n--\nbracket extraction decode failed: {e}"

    # -----------------------
    # Contract validation
    # -----------------------

    def _find_violation(self, data) -> SchemaViolation | None:
        if not isinstance(data, dict):
            return SchemaViolation("$", f"expected a JSON object, got {type(data).__name__}")

        if "isAsking" not in data:
            return SchemaViolation("isAsking", "is required")
        is_asking = data["isAsking"]
        if not isinstance(is_asking, bool):
            return SchemaViolation("isAsking", "must be a boolean")

        question = data.get("question")
        roadmap = data.get("roadmap")

        if is_asking:
            if not self._is_non_empty_str(question):
                return SchemaViolation("question", "must be a non-empty string when isAsking is true")
            if roadmap is not None:
                return SchemaViolation("roadmap", "must be null when isAsking is true")
            return None

        if question is not None:
            return SchemaViolation("question", "must be null when isAsking is false")
        if not isinstance(roadmap, dict):
            return SchemaViolation("roadmap", "must be an object when isAsking is false")
        if not self._is_non_empty_str(roadmap.get("name")):
            return SchemaViolation("roadmap.name", "must be a non-empty string")
        if not isinstance(roadmap.get("description"), str):
            return SchemaViolation("roadmap.description", "must be a string")

        steps = roadmap.get("steps")
        if not isinstance(steps, list):
            return SchemaViolation("roadmap.steps", "must be an array")
        for i, step in enumerate(steps):
            where = f"roadmap.steps[{i}]"
            if not isinstance(step, dict):
                return SchemaViolation(where, "must be an object")
            if not self._is_non_empty_str(step.get("name")):
                return SchemaViolation(f"{where}.name", "must be a non-empty string")
            if not isinstance(step.get("description"), str):
                return SchemaViolation(f"{where}.description", "must be a string")
        return None

    def _is_non_empty_str(self, value) -> bool:
        return isinstance(value, str) and bool(value.strip())
