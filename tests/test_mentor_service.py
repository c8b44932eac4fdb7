"""End-to-end tests of the session service on the memory backend."""

from __future__ import annotations

import pytest

from study_mentor.agents.gemini_client import GeminiClient
from study_mentor.learning.models import ModeKey
from study_mentor.storage.document_store import SERVER_TIMESTAMP, history_collection_path
from study_mentor.system import MentorSystem

from conftest import DelayedDeliveryStore, FakeHttpSession, FakeResponse


def _stored_history(memory_store, service):
    """Raw documents in the signed-in user's history collection."""
    path = history_collection_path("test-app", service.state.identity.uid)
    return memory_store._children(path)


@pytest.fixture
def mentored(service):
    """Service whose student already chose an MBTI type."""
    assert service.choose_profile("INFJ")
    return service


def test_start_signs_in_and_asks_for_profile(service):
    state = service.state
    assert state.identity is not None
    assert state.mbti is None
    assert state.show_profile_prompt, "A first-time student should be asked for an MBTI type"
    assert state.history == []


def test_choose_profile_closes_prompt_and_persists(service, memory_store):
    assert service.choose_profile("enfp")

    assert service.state.mbti == "ENFP"
    assert not service.state.show_profile_prompt
    assert memory_store.get_document(service.profiles.profile_path(service.state.identity)) == {"mbti": "ENFP"}


def test_choose_unknown_profile_reports_error(service):
    assert not service.choose_profile("WXYZ")
    assert "WXYZ" in service.state.error
    assert service.state.mbti is None


def test_successful_submission_records_exactly_one_exchange(mentored, fake_gateway, memory_store, clock):
    """Test that a gateway success yields one history record matching the request."""
    mentored.select_mode(ModeKey.QA)
    mentored.set_prompt("What did King Sejong achieve?")

    answer = mentored.submit()

    assert answer == "Here is a hint."
    assert fake_gateway.calls[0]["prompt"] == (
        "Answer the following question in detail: What did King Sejong achieve?"
    )
    assert mentored.state.response_text == "Here is a hint."
    assert mentored.state.error == ""
    assert not mentored.state.is_loading

    history = mentored.state.history
    assert len(history) == 1
    entry = history[0]
    assert entry.mode is ModeKey.QA
    assert entry.prompt_text == "What did King Sejong achieve?"
    assert entry.response_text == "Here is a hint."
    assert entry.mbti == "INFJ"
    assert entry.created_at == clock.current


def test_input_is_cleared_after_success(mentored):
    mentored.select_mode(ModeKey.IMAGE)
    mentored.attach_image("leaf.png", b"png-bytes")
    mentored.set_prompt("What kind of leaf is this?")

    mentored.submit()

    assert mentored.composer.prompt_text == ""
    assert mentored.composer.image is None
    assert mentored.active_mode.key is ModeKey.IMAGE


def test_image_submission_sends_attachment(mentored, fake_gateway):
    mentored.select_mode(ModeKey.IMAGE)
    image = mentored.attach_image("leaf.png", b"png-bytes")

    mentored.submit()

    assert fake_gateway.calls[0]["image"] == image
    assert mentored.state.history[0].prompt_text == ""


def test_gateway_failure_records_nothing_and_clears_input(mentored, fake_gateway, gateway_failure, memory_store):
    fake_gateway.error = gateway_failure
    mentored.select_mode(ModeKey.QUIZ)
    mentored.set_prompt("Photosynthesis")

    assert mentored.submit() is None

    assert mentored.state.error == gateway_failure.user_message
    assert mentored.state.response_text == ""
    assert not mentored.state.is_loading
    assert mentored.composer.prompt_text == "", "Input is cleared whatever the outcome"
    assert _stored_history(memory_store, mentored) == []
    assert mentored.state.history == []


def test_empty_input_never_reaches_gateway(mentored, fake_gateway):
    mentored.select_mode(ModeKey.SUMMARY)

    assert mentored.submit() is None

    assert fake_gateway.calls == []
    assert mentored.state.error == "Enter a question, some text, or an image first."


def test_rejected_input_is_kept(mentored):
    mentored.select_mode(ModeKey.IMAGE)
    mentored.attach_image("leaf.png", b"png-bytes")
    mentored.select_mode(ModeKey.QA)

    mentored.submit()

    assert mentored.composer.image is not None, "Validation failures must not drop the attachment"


def test_mentor_mode_without_profile_reopens_prompt(service, fake_gateway):
    service.dismiss_profile_prompt()
    service.set_prompt("Why do we need fractions?")

    assert service.submit() is None

    assert fake_gateway.calls == []
    assert service.state.show_profile_prompt
    assert "MBTI" in service.state.error
    assert service.composer.prompt_text == "Why do we need fractions?"


def test_mentor_mode_with_empty_text_and_no_profile_opens_prompt(service, fake_gateway):
    """Test that the missing profile prompt opens for any text, including none at all."""
    service.dismiss_profile_prompt()
    service.set_prompt("")

    assert service.submit() is None

    assert fake_gateway.calls == []
    assert service.state.show_profile_prompt
    assert service.state.error == "Enter a question, some text, or an image first."


def test_empty_text_in_other_modes_leaves_profile_prompt_closed(service):
    service.dismiss_profile_prompt()
    service.select_mode(ModeKey.QA)

    service.submit()

    assert not service.state.show_profile_prompt


def test_mentor_prompt_carries_profile(mentored, fake_gateway):
    mentored.set_prompt("Why do we need fractions?")
    mentored.submit()

    prompt = fake_gateway.calls[0]["prompt"]
    assert prompt.count("INFJ") == 2
    assert mentored.state.history[0].mbti == "INFJ"


def test_newest_error_replaces_previous_one(mentored, fake_gateway, gateway_failure):
    mentored.select_mode(ModeKey.QA)
    mentored.submit()
    assert mentored.state.error.startswith("Enter a question")

    fake_gateway.error = gateway_failure
    mentored.set_prompt("Now with text")
    mentored.submit()

    assert mentored.state.error == gateway_failure.user_message


def test_success_clears_previous_error(mentored):
    mentored.select_mode(ModeKey.QA)
    mentored.submit()
    mentored.set_prompt("A real question")
    mentored.submit()

    assert mentored.state.error == ""


def test_recall_restores_entry_without_network(mentored, fake_gateway):
    mentored.select_mode(ModeKey.SUMMARY)
    mentored.set_prompt("Long text about volcanoes")
    mentored.submit()
    entry_id = mentored.state.history[0].id
    mentored.select_mode(ModeKey.QA)
    mentored.state.response_text = ""

    recalled = mentored.recall(entry_id)

    assert recalled is not None
    assert len(fake_gateway.calls) == 1
    assert mentored.state.response_text == "Here is a hint."
    assert mentored.composer.prompt_text == "Long text about volcanoes"
    assert mentored.active_mode.key is ModeKey.SUMMARY


def test_recall_of_unknown_id_is_a_no_op(mentored):
    assert mentored.recall("missing") is None


def test_identity_change_resubscribes(mentored, memory_store):
    """Test that a new identity drops the old history and profile, then loads its own."""
    mentored.select_mode(ModeKey.QA)
    mentored.set_prompt("first user question")
    mentored.submit()
    first_uid = mentored.state.identity.uid

    mentored.session.sign_out()
    assert mentored.state.identity is None
    assert mentored.state.history == []

    mentored.session.start()
    assert mentored.state.identity.uid != first_uid
    assert mentored.state.mbti is None
    assert mentored.state.history == []

    memory_store.add_document(
        history_collection_path("test-app", first_uid),
        {"type": "qa", "prompt": "late write", "response": "x", "mbti": None},
    )
    assert mentored.state.history == [], "The previous identity's feed must be released"


def test_sessions_of_the_same_user_share_history(system):
    """Test that two sessions for one custom-token user see each other's records."""
    system.settings.initial_auth_token = "shared-student"
    first = system.new_session()
    second = system.new_session()
    first.start()
    second.start()

    first.select_mode(ModeKey.QA)
    first.set_prompt("Where do rivers start?")
    first.submit()

    assert [entry.prompt_text for entry in second.state.history] == ["Where do rivers start?"]
    first.close()
    second.close()


def test_close_releases_history_feed(service, memory_store):
    uid = service.state.identity.uid
    service.close()

    memory_store.add_document(
        history_collection_path("test-app", uid),
        {"type": "qa", "prompt": "after close", "response": "x", "mbti": None},
    )

    assert service.state.history == []


def test_start_is_idempotent(service):
    uid = service.state.identity.uid
    service.start()
    assert service.state.identity.uid == uid


def test_unreadable_record_does_not_freeze_history(mentored, memory_store):
    """Test that a stored record of an unknown type is skipped while new exchanges appear."""
    memory_store.add_document(
        history_collection_path("test-app", mentored.state.identity.uid),
        {"type": "chat", "prompt": "legacy", "response": "x", "mbti": None},
    )
    mentored.select_mode(ModeKey.QA)
    mentored.set_prompt("Fresh question")

    mentored.submit()

    assert [entry.prompt_text for entry in mentored.state.history] == ["Fresh question"]
    assert mentored.state.error == ""


def test_placeholder_answer_is_recorded(memory_settings, memory_store):
    """Test that a structurally empty model answer is stored like any other answer."""
    session = FakeHttpSession(FakeResponse(payload={"candidates": []}))
    gateway = GeminiClient(memory_settings.gateway, session=session)
    service = MentorSystem(memory_settings, gateway=gateway, memory_store=memory_store).new_session()
    service.start()
    service.select_mode(ModeKey.QA)
    service.set_prompt("Anything?")

    answer = service.submit()

    assert answer == "No valid response was received."
    assert [entry.response_text for entry in service.state.history] == [answer]
    assert service.state.error == ""
    service.close()


def test_strict_empty_answer_records_nothing(memory_settings, memory_store):
    memory_settings.gateway.empty_response_is_error = True
    session = FakeHttpSession(FakeResponse(payload={"candidates": []}))
    gateway = GeminiClient(memory_settings.gateway, session=session)
    service = MentorSystem(memory_settings, gateway=gateway, memory_store=memory_store).new_session()
    service.start()
    service.select_mode(ModeKey.QA)
    service.set_prompt("Anything?")

    assert service.submit() is None

    assert service.state.history == []
    assert service.state.error.startswith("An error occurred while generating the AI response")
    service.close()


def test_wait_for_history_with_asynchronous_store(memory_settings, fake_gateway):
    """Test that callers reading history once can wait for a store that delivers on another thread."""
    store = DelayedDeliveryStore()
    store.add_document(
        history_collection_path("test-app", "returning-student"),
        {"type": "qa", "prompt": "earlier question", "response": "a", "mbti": None, "timestamp": SERVER_TIMESTAMP},
    )
    memory_settings.initial_auth_token = "returning-student"
    service = MentorSystem(memory_settings, gateway=fake_gateway, memory_store=store).new_session()
    service.start()

    assert service.wait_for_history(timeout=5)
    assert [entry.prompt_text for entry in service.state.history] == ["earlier question"]
    service.close()


def test_wait_for_history_without_identity_returns_false(system):
    assert not system.new_session().wait_for_history(timeout=0)
