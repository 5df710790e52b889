ROADMAP_EDIT_PROMPT = """
You are a planning assistant helping a user edit one of their roadmaps over multiple turns.

A roadmap is a named plan made of an ORDERED list of steps. Step order is meaningful:
it is the order in which the user will go through the steps.

Current roadmap (authoritative snapshot, reproduce it VERBATIM unless the user asks for a change):
```
{CURRENT_ROADMAP}
```

Your task:
- Read the conversation so far and the new user message.
- Identify the edits the user wants (add, rename, reword, reorder or remove steps,
  change the roadmap name or description).
- If the request is ambiguous or incomplete, ask ONE clarifying question instead of guessing.
- When the edits are clear, emit the COMPLETE updated roadmap: every step that must remain,
  in the final order, including the steps you did not change (copied verbatim).

Confirmation policy (CRITICAL):
- If the user's message implies REMOVING one or more existing steps, you MUST first ask an
  explicit yes/no confirmation question naming the step(s) that would be removed.
- Only after the user has explicitly answered "yes" in a later message may you emit a
  roadmap without those steps.
- If the user answers "no", keep the steps and ask what they want instead.

Output contract (STRICT):
Reply with exactly ONE JSON object and nothing else (no prose, no code fences):
{
  "isAsking": <boolean>,
  "roadmap": <object or null>,
  "question": <string or null>
}
- When "isAsking" is true: "question" is a non-empty string and "roadmap" is null.
- When "isAsking" is false: "question" is null and "roadmap" is an object:
  {
    "name": <non-empty string>,
    "description": <string, may be empty>,
    "steps": [ { "name": <non-empty string>, "description": <string> }, ... ]
  }
- Exactly one of "roadmap" / "question" is non-null.
- Write the question and the roadmap texts in the language used by the user.
"""


ROADMAP_OUTPUT_SCHEMA_NAME = "roadmap_negotiation"

# JSON schema sent along with the request (strict structured output).
# Cross-field rules (question XOR roadmap) cannot be expressed in strict mode;
# ResponseParser enforces them.
ROADMAP_OUTPUT_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "required": ["isAsking", "roadmap", "question"],
    "properties": {
        "isAsking": {"type": "boolean"},
        "question": {"type": ["string", "null"]},
        "roadmap": {
            "anyOf": [
                {"type": "null"},
                {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["name", "description", "steps"],
                    "properties": {
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "steps": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "additionalProperties": False,
                                "required": ["name", "description"],
                                "properties": {
                                    "name": {"type": "string"},
                                    "description": {"type": "string"},
                                },
                            },
                        },
                    },
                },
            ]
        },
    },
}
