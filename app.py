"""
Tutorial REPL - Streamlit Application

An interactive panel that runs learner code in a per-session sandbox container.
State (variables, imports) carries over between runs until the session is reset.
"""

import atexit
import logging

import streamlit as st

from tutor_repl.config import ConfigError, configure_logging, get_config
from tutor_repl.errors import ReplError, SessionError
from tutor_repl.languages import SUPPORTED_LANGUAGES, DEFAULT_LANGUAGE
from tutor_repl.sandbox import CleanupScheduler, SessionRegistry, get_registry
from tutor_repl.utils import format_execution_time

logger = logging.getLogger(__name__)


# Page configuration
st.set_page_config(
    page_title="Tutorial REPL",
    page_icon="🐍",
    layout="wide",
)

# Custom CSS for better styling
st.markdown("""
<style>
    .main-header {
        font-size: 2.2rem;
        font-weight: 700;
        color: #1E88E5;
        margin-bottom: 0.5rem;
    }
    .sub-header {
        font-size: 1.05rem;
        color: #666;
        margin-bottom: 1.5rem;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_engine():
    """Build the registry and start the cleanup thread once per process."""
    config = get_config()
    configure_logging(config.log_level)

    registry = get_registry()
    scheduler = CleanupScheduler(registry, interval=config.cleanup_interval)
    scheduler.start()

    def shutdown():
        scheduler.stop(timeout=5)
        registry.shutdown()

    atexit.register(shutdown)
    logger.info("REPL engine started")
    return registry, scheduler


def init_session_state():
    """Initialize per-browser state."""
    if "repl_session_id" not in st.session_state:
        st.session_state.repl_session_id = None
    if "repl_language" not in st.session_state:
        st.session_state.repl_language = DEFAULT_LANGUAGE
    if "errors" not in st.session_state:
        st.session_state.errors = []


def validate_config() -> bool:
    """Validate configuration and show error if invalid."""
    try:
        get_config()
        return True
    except ConfigError as e:
        st.error(f"⚠️ Configuration Error:\n\n{str(e)}")
        return False


def ensure_session(registry: SessionRegistry, language: str) -> str:
    """Return a live session for the selected language, creating one if needed."""
    session_id = st.session_state.repl_session_id
    if session_id and st.session_state.repl_language == language:
        try:
            registry.get_session_state(session_id)
            return session_id
        except SessionError as e:
            logger.info("Session %s is gone (%s), starting a new one", session_id, e.message)
    elif session_id:
        registry.delete_session(session_id)

    session_id = registry.create_session(language)
    st.session_state.repl_session_id = session_id
    st.session_state.repl_language = language
    return session_id


def display_history(registry: SessionRegistry, session_id: str):
    """Show past runs, most recent last."""
    snapshot = registry.get_session_state(session_id)

    if not snapshot.execution_history:
        st.caption("No code run yet in this session.")
        return

    for record in snapshot.execution_history:
        st.code(record.input, language=snapshot.language)
        if record.output:
            st.text(record.output)
        if record.error:
            st.error(record.error)
        st.caption(f"⏱️ {format_execution_time(record.execution_time_ms)}")

    if snapshot.variables:
        with st.expander("📦 Variables"):
            st.json(snapshot.variables)


def display_stats(registry: SessionRegistry):
    stats = registry.get_session_stats()
    st.metric("Sessions", stats.total_sessions)
    st.metric("Executions", stats.total_executions)
    if stats.language_breakdown:
        st.json(stats.language_breakdown)


def display_errors():
    if st.session_state.errors:
        for error in st.session_state.errors:
            st.warning(error)
        st.session_state.errors = []


def main():
    init_session_state()

    st.markdown('<div class="main-header">🧪 Tutorial REPL</div>', unsafe_allow_html=True)
    st.markdown(
        '<div class="sub-header">Run code in an isolated sandbox. Definitions persist between runs.</div>',
        unsafe_allow_html=True,
    )

    if not validate_config():
        return

    registry, _scheduler = get_engine()

    with st.sidebar:
        language = st.selectbox(
            "Language",
            options=list(SUPPORTED_LANGUAGES),
            format_func=lambda lang_id: SUPPORTED_LANGUAGES[lang_id].name,
            index=list(SUPPORTED_LANGUAGES).index(st.session_state.repl_language),
        )
        st.divider()
        display_stats(registry)

    try:
        session_id = ensure_session(registry, language)
    except ReplError as e:
        st.error(f"❌ Could not start a sandbox: {e.message}")
        return

    code = st.text_area("Code", height=180, key="repl_code", placeholder="x = 42")

    col1, col2, col3 = st.columns(3)
    with col1:
        run_clicked = st.button("▶️ Run", type="primary", use_container_width=True)
    with col2:
        reset_clicked = st.button("🔄 Reset", use_container_width=True)
    with col3:
        end_clicked = st.button("🗑️ End session", use_container_width=True)

    if run_clicked and code.strip():
        with st.spinner("Running..."):
            try:
                result = registry.execute_code(session_id, code, language)
                if result.timed_out:
                    st.session_state.errors.append("Execution timed out. The sandbox is still available.")
            except ReplError as e:
                st.session_state.errors.append(e.message)

    if reset_clicked:
        try:
            registry.reset_session(session_id)
        except ReplError as e:
            st.session_state.errors.append(e.message)

    if end_clicked:
        registry.delete_session(session_id)
        st.session_state.repl_session_id = None
        st.rerun()

    display_errors()
    st.divider()
    display_history(registry, session_id)


if __name__ == "__main__":
    main()
