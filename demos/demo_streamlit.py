"""
Streamlit Demo Application
Web-based persona chat: start, send, view and delete sessions.
"""

import streamlit as st
import sys
import os
from datetime import datetime

# Project root (parent of demos/)
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, _PROJECT_ROOT)

_DEFAULT_LOG_DIR = os.path.join(_PROJECT_ROOT, "conversation_logger", "streamlit")

from openbook import OpenBookError, Settings, build_session_manager
from utils.conversation_logger import ConversationLogger

# Page config
st.set_page_config(
    page_title="OpenBook Persona Chat",
    page_icon="💬",
    layout="wide"
)

# Initialize session state
for key in ("manager", "manager_model", "session_id", "username", "logger"):
    if key not in st.session_state:
        st.session_state[key] = None
if "show_details" not in st.session_state:
    st.session_state.show_details = False


def _start(username: str) -> None:
    session = st.session_state.manager.start_session(username)
    st.session_state.session_id = session.session_id
    st.session_state.username = username
    os.makedirs(_DEFAULT_LOG_DIR, exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    st.session_state.logger = ConversationLogger(
        os.path.join(_DEFAULT_LOG_DIR, f"streamlit_{session.session_id}_{ts}.jsonl")
    )


# Sidebar for configuration
with st.sidebar:
    st.title("⚙️ Configuration")

    model = st.text_input(
        "Model (optional)",
        value=st.session_state.manager_model or "",
        help="Leave empty for default. Applies from the next Start Session.",
    )
    username = st.text_input("GitHub username", value=st.session_state.username or "")

    if st.button("Start Session", disabled=not username):
        try:
            # A different model needs a new client; sessions live in the store and survive
            if st.session_state.manager is None or st.session_state.manager_model != model:
                settings = Settings.from_env()
                if model:
                    settings.model = model
                st.session_state.manager = build_session_manager(settings)
                st.session_state.manager_model = model
            with st.spinner(f"Loading profile and knowledge base for {username}..."):
                _start(username)
            st.success("Session started!")
        except Exception as e:
            st.error(f"Error: {e}")
            st.info("Make sure you have set GEMINI_API_KEY (or GOOGLE_API_KEY) in your .env file")

    st.divider()
    st.session_state.show_details = st.checkbox("Show routing details", value=False)

# Main interface
st.title("💬 OpenBook Persona Chat")
st.markdown("Ask a developer about their **projects**, **languages** and **background**")

manager = st.session_state.manager
session = manager.get_session(st.session_state.session_id) if manager and st.session_state.session_id else None

if session is None:
    st.warning("⚠️ Start a session in the sidebar first.")
    st.info("""
    **Setup Instructions:**
    1. Create a `.env` file in the project root
    2. Add your API key: `GEMINI_API_KEY=your_key_here` (optionally `GITHUB_TOKEN=...`)
    3. Enter a GitHub username and click "Start Session"
    """)
else:
    for message in session.messages:
        with st.chat_message(message.role):
            st.markdown(message.content)

    if prompt := st.chat_input(f"Ask {session.username} something..."):
        with st.chat_message("user"):
            st.markdown(prompt)

        with st.chat_message("assistant"):
            with st.spinner("Thinking..."):
                try:
                    response = manager.send_message(session.session_id, prompt)
                    st.markdown(response.message)
                    if st.session_state.logger:
                        st.session_state.logger.log_exchange(session.session_id, prompt, response)
                    if st.session_state.show_details:
                        with st.expander("🔍 Routing"):
                            st.write("**Context mode:**", response.context_mode.value)
                            st.write("**Matched repository:**", response.matched_repository or "none")
                            st.write("**Tokens:**", response.tokens_used)
                except OpenBookError as e:
                    st.error(f"Error: {e}")

    # Stats sidebar
    with st.sidebar:
        st.divider()
        st.subheader("📊 Session")
        current = manager.get_session(session.session_id) or session
        st.metric("Messages", len(current.messages))
        st.metric("Total tokens", f"{current.total_tokens_used:,}")
        st.caption(f"Session id: {current.session_id}")

        other_ids = manager.list_sessions(current.username)
        st.caption(f"{len(other_ids)} session(s) stored for {current.username}")

        if st.button("Delete Session"):
            manager.delete_session(current.session_id)
            st.session_state.session_id = None
            st.rerun()
