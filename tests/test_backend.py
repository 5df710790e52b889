import pytest

from roadmap_chat.backend import Backend
from roadmap_chat.DBConnection_hlpr import ConnectionConfig

from conftest import FakeChatLlm, asking_text, finalizing_text, step_rows


@pytest.fixture()
def config(monkeypatch) -> ConnectionConfig:
    monkeypatch.setenv("ROADMAP_HISTORY_CAP", "6")
    monkeypatch.delenv("ROADMAP_HISTORY_WINDOW", raising=False)
    return ConnectionConfig()


def test_roadmap_chat_round_trip(session_factory, seeded_roadmap, config) -> None:
    llm = FakeChatLlm(
        [
            asking_text("Remove 'Pack boxes'? (yes/no)"),
            finalizing_text("Moving out", "Leave the flat", [("Give notice", ""), ("Book movers", "")]),
        ]
    )
    backend = Backend(config, session_factory=session_factory, chat_llm=llm)
    roadmap_id = seeded_roadmap["roadmap_id"]

    first = backend._process_request_data(
        {"type": "roadmap_chat", "payload": {"text": "remove packing", "roadmap_id": roadmap_id}}
    )
    assert first["status"] == "success"
    assert first["data"]["isAsking"] is True

    second = backend._process_request_data(
        {"type": "roadmap_chat", "payload": {"text": "yes", "roadmap_id": str(roadmap_id)}}
    )
    assert second["data"]["isAsking"] is False
    assert [row[1] for row in step_rows(session_factory, roadmap_id)] == ["Give notice", "Book movers"]

    history = backend._process_request_data({"type": "roadmap_history", "payload": {"roadmap_id": roadmap_id}})
    assert history["data"] == [
        {"message": "remove packing", "response": "Remove 'Pack boxes'? (yes/no)"},
        {"message": "yes", "response": "Your roadmap has been updated."},
    ]
    # the roadmap conversation is keyed by the roadmap's uuid
    assert len(backend.history.load(seeded_roadmap["roadmap_uuid"], 10)) == 4


def test_errors_are_typed_in_the_response(session_factory, seeded_roadmap, config) -> None:
    backend = Backend(config, session_factory=session_factory, chat_llm=FakeChatLlm(["no json here"]))

    missing = backend._process_request_data({"type": "roadmap_chat", "payload": {"roadmap_id": 1}})
    assert missing["status"] == "error"
    assert (missing["kind"], missing["category"]) == ("input_error", "fix_request")

    unknown = backend._process_request_data({"type": "roadmap_chat", "payload": {"text": "hi", "roadmap_id": 9999}})
    assert (unknown["kind"], unknown["category"]) == ("not_found", "fix_request")

    fractional = backend._process_request_data(
        {"type": "roadmap_chat", "payload": {"text": "hi", "roadmap_id": seeded_roadmap["roadmap_id"] + 0.9}}
    )
    assert (fractional["kind"], fractional["category"]) == ("input_error", "fix_request")
    history_of_fraction = backend._process_request_data({"type": "roadmap_history", "payload": {"roadmap_id": "1.9"}})
    assert history_of_fraction["kind"] == "input_error"

    garbled = backend._process_request_data(
        {"type": "roadmap_chat", "payload": {"text": "hi", "roadmap_id": seeded_roadmap["roadmap_id"]}}
    )
    assert (garbled["kind"], garbled["category"]) == ("parse_error", "retry")


def test_missing_credential_is_reported_as_misconfiguration(session_factory, seeded_roadmap, config) -> None:
    backend = Backend(config, session_factory=session_factory, chat_llm=FakeChatLlm([], has_credentials=False))
    response = backend._process_request_data(
        {"type": "roadmap_chat", "payload": {"text": "hi", "roadmap_id": seeded_roadmap["roadmap_id"]}}
    )
    assert (response["kind"], response["category"]) == ("credential_error", "misconfigured")


def test_assistant_history_uses_user_conversation(session_factory, seeded_roadmap, config) -> None:
    backend = Backend(config, session_factory=session_factory, chat_llm=FakeChatLlm([]))
    backend.history.append_turn(seeded_roadmap["user_uuid"], "what next?", "plain answer")
    response = backend._process_request_data(
        {"type": "assistant_history", "payload": {"user_id": seeded_roadmap["user_id"]}}
    )
    assert response["data"] == [{"message": "what next?", "response": "plain answer"}]


def test_unknown_request_type(session_factory, config) -> None:
    backend = Backend(config, session_factory=session_factory, chat_llm=FakeChatLlm([]))
    response = backend._process_request_data({"type": "nope"})
    assert response["status"] == "error"
    assert "nope" in response["message"]


def test_config_validates_numbers(monkeypatch) -> None:
    monkeypatch.setenv("ROADMAP_HISTORY_CAP", "1")
    with pytest.raises(ValueError):
        ConnectionConfig()
    monkeypatch.setenv("ROADMAP_HISTORY_CAP", "ten")
    with pytest.raises(ValueError):
        ConnectionConfig()


def test_config_defaults(monkeypatch) -> None:
    for name in ("ROADMAP_HISTORY_CAP", "ROADMAP_HISTORY_WINDOW", "ROADMAP_LLM_TIMEOUT", "ROADMAP_LLM_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "")
    config = ConnectionConfig()
    assert config.HISTORY_CAP == 10
    assert config.HISTORY_WINDOW == 10
    assert config.LLM_TIMEOUT == 60
    assert config.LLM_MODEL == "gpt-4o-mini"
    with pytest.raises(Exception) as exc_info:
        config.require_api_key()
    assert exc_info.value.kind == "credential_error"
