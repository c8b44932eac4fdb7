"""Streamlit-based UI for the AI study mentor."""

from __future__ import annotations

import logging
from datetime import datetime

import streamlit as st
from dotenv import load_dotenv

from study_mentor.errors import ConfigurationError
from study_mentor.learning.models import MBTI_TYPES, Exchange
from study_mentor.learning.modes import get_mode, list_modes
from study_mentor.services.mentor_service import StudyMentorService
from study_mentor.system import MentorSystem

logger = logging.getLogger(__name__)

SERVICE_KEY = "mentor_service"
PROMPT_KEY = "prompt_input"
SYNC_KEY = "sync_composer"
ATTACHED_FILE_KEY = "attached_file_id"
HISTORY_REFRESH_SECONDS = 2
IMAGE_TYPES = ["png", "jpg", "jpeg", "gif", "webp", "bmp"]


@st.cache_resource(show_spinner=False)
def load_system() -> MentorSystem:
    """Build the process-wide system once from config/default.yaml and the environment."""
    load_dotenv(override=False)
    return MentorSystem.from_config()


def get_service(system: MentorSystem) -> StudyMentorService:
    """Return this browser session's service, signing in on first use."""
    service = st.session_state.get(SERVICE_KEY)
    if service is None:
        service = system.new_session()
        service.start()
        st.session_state[SERVICE_KEY] = service
    return service


def request_composer_sync() -> None:
    """Copy the composer text into the text area on the next run."""
    st.session_state[SYNC_KEY] = True


def _sync_composer(service: StudyMentorService) -> None:
    # Widget state may only be written before the widget is created in a run.
    if st.session_state.pop(SYNC_KEY, False) or PROMPT_KEY not in st.session_state:
        st.session_state[PROMPT_KEY] = service.composer.prompt_text


def format_timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def history_title(entry: Exchange) -> str:
    title = f"{get_mode(entry.mode).icon} **{entry.mode.value}**"
    if entry.mbti:
        title += f" ({entry.mbti})"
    return title


@st.dialog("Start AI mentoring")
def profile_dialog(service: StudyMentorService) -> None:
    st.write("Choose the student's MBTI type so the mentor can adapt to them.")
    for start in range(0, len(MBTI_TYPES), 4):
        columns = st.columns(4)
        for column, code in zip(columns, MBTI_TYPES[start:start + 4]):
            if column.button(code, key=f"mbti_{code}", use_container_width=True):
                if service.choose_profile(code):
                    st.rerun()
    if service.state.error:
        st.error(service.state.error)


def render_identity_bar(service: StudyMentorService) -> None:
    state = service.state
    left, right = st.columns([3, 2])
    left.caption(f"👤 User ID: {state.identity.uid}")
    if state.mbti:
        inner_left, inner_right = right.columns([2, 1])
        inner_left.markdown(f"**MBTI: {state.mbti}**")
        if inner_right.button("Change", key="change_mbti"):
            service.open_profile_prompt()
            st.rerun()


def render_composer(service: StudyMentorService) -> None:
    modes = list_modes()
    keys = [mode.key for mode in modes]
    selected = st.radio(
        "Mode",
        keys,
        index=keys.index(service.composer.mode_key),
        format_func=lambda key: f"{get_mode(key).icon} {get_mode(key).label}",
        horizontal=True,
        label_visibility="collapsed",
    )
    if selected != service.composer.mode_key:
        service.select_mode(selected)
        st.rerun()

    mode = service.active_mode
    _sync_composer(service)
    st.text_area(
        "Prompt",
        key=PROMPT_KEY,
        placeholder=mode.placeholder,
        height=80 if mode.accepts_image else 160,
        label_visibility="collapsed",
    )

    if mode.accepts_image:
        uploaded = st.file_uploader(
            "Choose an image",
            type=IMAGE_TYPES,
            key=f"image_upload_{service.composer.image_revision}",
        )
        if uploaded is not None and st.session_state.get(ATTACHED_FILE_KEY) != uploaded.file_id:
            service.attach_image(uploaded.name, uploaded.getvalue(), uploaded.type)
            st.session_state[ATTACHED_FILE_KEY] = uploaded.file_id
        image = service.composer.image
        if image is not None:
            st.image(image.raw_bytes(), caption=f"{image.name} selected", width=320)
            if st.button("Remove image", key="remove_image"):
                service.clear_image()
                st.session_state.pop(ATTACHED_FILE_KEY, None)
                st.rerun()

    label = f"{mode.icon} {mode.submit_label}"
    if st.button(label, type="primary", disabled=service.state.is_loading, use_container_width=True):
        service.set_prompt(st.session_state.get(PROMPT_KEY, ""))
        with st.spinner("The AI is thinking..."):
            service.submit()
        st.session_state.pop(ATTACHED_FILE_KEY, None)
        request_composer_sync()
        st.rerun()


def render_response(service: StudyMentorService) -> None:
    state = service.state
    with st.container(border=True):
        st.subheader("AI response")
        if state.error:
            st.error(state.error)
        if state.response_text:
            st.markdown(state.response_text)
        elif not state.error:
            st.caption("The AI's answer will appear here.")


@st.fragment(run_every=HISTORY_REFRESH_SECONDS)
def render_history(service: StudyMentorService) -> None:
    st.header("🕘 Study history")
    entries = service.state.history
    if not entries:
        st.info("No study history yet.")
        return
    for entry in entries:
        with st.container(border=True):
            st.markdown(history_title(entry))
            st.caption(entry.prompt_text[:80] or "Image question")
            if entry.created_at is not None:
                st.caption(format_timestamp(entry.created_at))
            if st.button("Open", key=f"recall_{entry.id}"):
                service.recall(entry)
                request_composer_sync()
                st.rerun()


def render() -> None:
    st.set_page_config(page_title="AI Study Mentor", page_icon="🧠", layout="wide")
    st.title("🧠 AI Study Mentor")
    st.caption("Discover your potential and grow with your AI mentor.")

    try:
        system = load_system()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        st.error(exc.user_message)
        st.stop()

    service = get_service(system)
    if service.state.identity is None:
        st.error(service.state.error or "Sign-in failed. Please reload the page.")
        st.stop()

    render_identity_bar(service)
    if service.state.show_profile_prompt:
        profile_dialog(service)

    render_composer(service)
    render_response(service)

    with st.sidebar:
        render_history(service)


if __name__ == "__main__":  # pragma: no cover - streamlit entry
    render()
