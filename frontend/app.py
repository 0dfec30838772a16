"""PoolSnap - Streamlit photo chat.

Thin client for the pool-care photo assistant. All conversation logic lives
in the ``poolsnap`` package. This file handles:
  - SessionContext lifecycle in st.session_state (sign-in sync, sign-out)
  - Photo selection and the send button (disabled while composing)
  - Rendering the conversation snapshot with formatted assistant replies
  - Pool settings and profile forms in the sidebar
"""

import asyncio

import streamlit as st
from dotenv import load_dotenv
from pydantic import ValidationError

from poolsnap.api.account_client import AccountClient, AccountError
from poolsnap.api.analysis_client import AnalysisClient
from poolsnap.api.schemas import PoolSettings, ProfileUpdate
from poolsnap.core.formatter import format_message
from poolsnap.core.images import SelectedImage
from poolsnap.core.message_store import ConversationEntry, Role
from poolsnap.session.context import SessionContext
from poolsnap.session.identity import EnvIdentityProvider, IdentityUnavailableError
from poolsnap.session.upload import UploadSession

load_dotenv()

st.set_page_config(
    page_title="PoolSnap - Pool Care Assistant",
    layout="centered",
)

st.markdown("""
<style>
    .stApp {
        max-width: 900px;
        margin: 0 auto;
    }
    .stChatMessage {
        padding: 0.75rem 1rem;
    }
</style>
""", unsafe_allow_html=True)


def init_session():
    """Create and sync the session context on first load."""
    if "context" not in st.session_state:
        st.session_state.context = SessionContext(identity=EnvIdentityProvider())
    if "uploader_key" not in st.session_state:
        st.session_state.uploader_key = 0

    context: SessionContext = st.session_state.context
    if not context.synced:
        try:
            asyncio.run(context.initialize(AccountClient()))
        except IdentityUnavailableError:
            st.error("[ERROR] Not signed in. Set POOLSNAP_SUB and POOLSNAP_ID_TOKEN.")
            st.stop()


def render_entry(entry: ConversationEntry):
    """Render a single conversation entry."""
    with st.chat_message(entry.role.value):
        if entry.image_ref is not None and not entry.image_ref.released:
            st.image(str(entry.image_ref.path), use_container_width=True)
        if entry.role is Role.ASSISTANT and not entry.is_pending:
            st.markdown(format_message(entry.text), unsafe_allow_html=True)
        else:
            st.markdown(entry.text)


def send_photo(upload):
    """Run one upload session for the selected photo."""
    context: SessionContext = st.session_state.context
    image = SelectedImage(
        filename=upload.name,
        content=upload.getvalue(),
        content_type=upload.type or "image/jpeg",
    )
    session = UploadSession(context, AnalysisClient(), image)

    with st.spinner("Analyzing your photo..."):
        try:
            result = asyncio.run(session.send())
        except IdentityUnavailableError as e:
            st.error(f"[ERROR] {e}")
            return

    # The session released its file; drop the selection so it is not sent twice
    st.session_state.uploader_key += 1
    if result.status == "failed":
        st.toast(result.error)
    st.rerun()


POOL_OPTIONS = {
    "pool_type": ["lap", "recreational", "infinity", "kids", "spa"],
    "pool_size": ["small", "medium", "large", "custom"],
    "location": ["indoor", "outdoor", "rooftop", "backyard"],
}


def _first_error(e: ValidationError) -> str:
    return e.errors()[0]["msg"].removeprefix("Value error, ")


def pool_settings_form(context: SessionContext):
    """Sidebar form for the pool description."""
    current = context.pool_settings
    with st.form("pool_settings"):
        st.markdown("### Pool Settings")
        choices = {}
        for field, options in POOL_OPTIONS.items():
            value = getattr(current, field) if current else None
            choices[field] = st.selectbox(
                field.replace("_", " ").title(),
                options,
                index=options.index(value) if value in options else 0,
            )
        if not st.form_submit_button("Save Pool", use_container_width=True):
            return

    try:
        settings = PoolSettings(**choices)
        asyncio.run(context.save_pool_settings(AccountClient(), settings))
    except ValidationError as e:
        st.error(f"[ERROR] {_first_error(e)}")
        return
    except (AccountError, IdentityUnavailableError) as e:
        st.error(f"[ERROR] Could not save pool settings: {e}")
        return
    st.success("[OK] Pool settings saved.")


def profile_form(context: SessionContext):
    """Sidebar form for the nickname."""
    with st.form("profile"):
        st.markdown("### Profile")
        nickname = st.text_input("Nickname", value=context.nickname or "")
        if not st.form_submit_button("Save Profile", use_container_width=True):
            return

    try:
        update = ProfileUpdate(nickname=nickname)
        asyncio.run(context.save_profile(AccountClient(), update))
    except ValidationError as e:
        st.error(f"[ERROR] Nickname {_first_error(e).lower()}")
        return
    except (AccountError, IdentityUnavailableError) as e:
        st.error(f"[ERROR] Could not save profile: {e}")
        return
    st.success("[OK] Profile saved.")


def main():
    """Run the Streamlit chat application."""
    init_session()
    context: SessionContext = st.session_state.context

    st.title("PoolSnap")
    st.caption(f"Hi {context.nickname}! Send a photo of your pool for a water-care check.")

    with st.sidebar:
        st.markdown("### Session Info")
        st.code(context.agent_id or "-", language=None)
        if context.pool_settings:
            ps = context.pool_settings
            st.markdown(f"**Pool:** {ps.pool_type}, {ps.pool_size}, {ps.location}")

        st.divider()
        pool_settings_form(context)
        profile_form(context)

        st.divider()
        if st.button("[DEL] Clear Chat", use_container_width=True):
            context.store.clear()
            st.rerun()
        if st.button("Sign Out", use_container_width=True):
            context.teardown()
            del st.session_state["context"]
            st.rerun()

    for entry in context.store.snapshot():
        render_entry(entry)

    upload = st.file_uploader(
        "PNG, JPG, JPEG up to 10MB",
        type=["png", "jpg", "jpeg"],
        key=f"uploader_{st.session_state.uploader_key}",
    )
    if st.button("Send Photo", disabled=upload is None or context.composing):
        send_photo(upload)


if __name__ == "__main__":
    main()
