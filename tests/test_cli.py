"""Tests for the typer command line on the memory backend."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from study_mentor.cli import app
from study_mentor.storage.document_store import history_collection_path

from conftest import DelayedDeliveryStore

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch, fake_gateway):
    """Run every command against the memory backend with a fake gateway."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("study_mentor.system.GeminiClient", lambda config: fake_gateway)
    return {
        "STUDY_MENTOR_CONFIG_OVERRIDES": json.dumps({"backend": "memory"}),
        "STUDY_MENTOR_INITIAL_AUTH_TOKEN": "cli-student",
    }


def test_modes_lists_every_mode():
    result = runner.invoke(app, ["modes"])

    assert result.exit_code == 0
    for key in ("mentor", "qa", "summary", "quiz", "image"):
        assert key in result.output


def test_ask_prints_answer(cli_env, fake_gateway):
    result = runner.invoke(app, ["ask", "qa", "Why is the sky blue?"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "Here is a hint." in result.output
    assert fake_gateway.calls[0]["prompt"].endswith("Why is the sky blue?")


def test_ask_mentor_with_mbti(cli_env, fake_gateway):
    result = runner.invoke(app, ["ask", "mentor", "Why fractions?", "--mbti", "isfp"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert fake_gateway.calls[0]["prompt"].count("ISFP") == 2


def test_ask_mentor_without_profile_fails(cli_env, fake_gateway):
    result = runner.invoke(app, ["ask", "mentor", "Why fractions?"], env=cli_env)

    assert result.exit_code == 1
    assert fake_gateway.calls == []


def test_ask_with_image(cli_env, fake_gateway, tmp_path):
    picture = tmp_path / "leaf.png"
    picture.write_bytes(b"\x89PNG")

    result = runner.invoke(app, ["ask", "image", "--image", str(picture)], env=cli_env)

    assert result.exit_code == 0, result.output
    assert fake_gateway.calls[0]["image"].mime_type == "image/png"


def test_unknown_mode_is_a_usage_error(cli_env):
    result = runner.invoke(app, ["ask", "essay", "hello"], env=cli_env)
    assert result.exit_code == 2


def test_history_starts_empty(cli_env):
    result = runner.invoke(app, ["history"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "No study history yet." in result.output


def test_history_waits_for_asynchronous_delivery(cli_env, monkeypatch):
    """Test that the listing waits for a store that answers on a background thread."""
    store = DelayedDeliveryStore()
    store.add_document(
        history_collection_path("default-app-id", "cli-student"),
        {"type": "qa", "prompt": "earlier question", "response": "a", "mbti": None},
    )
    monkeypatch.setattr("study_mentor.system.InMemoryDocumentStore", lambda: store)

    result = runner.invoke(app, ["history"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "earlier question" in result.output


def test_history_times_out(cli_env, monkeypatch):
    store = DelayedDeliveryStore(delay=5)
    monkeypatch.setattr("study_mentor.system.InMemoryDocumentStore", lambda: store)

    result = runner.invoke(app, ["history", "--wait", "0.05"], env=cli_env)

    assert result.exit_code == 1
    assert "Timed out" in result.output


def test_set_profile(cli_env):
    result = runner.invoke(app, ["set-profile", "entj"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "ENTJ" in result.output
    assert "cli-student" in result.output


def test_missing_firebase_config_exits_with_code_2(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STUDY_MENTOR_FIREBASE_CONFIG", raising=False)
    monkeypatch.delenv("STUDY_MENTOR_CONFIG_OVERRIDES", raising=False)

    result = runner.invoke(app, ["history"])

    assert result.exit_code == 2
