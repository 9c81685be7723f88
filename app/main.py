"""
Streamlit Frontend for Astra Ledger

Two pages:
1. Ledger:   a chat where the user types expenses, attaches a receipt,
             or asks a question about their spending
2. Insights: totals, category breakdown, the advisor tip and the list of
             records (with delete)

DESIGN PRINCIPLES:
1. One conversation per browser session
2. The record list always reflects storage (it is fed by the subscription)
3. Visual feedback while a turn is processed
4. A footer that says where the data lives (cloud or local)
"""

import asyncio

import streamlit as st

from astra_ledger.config import get_settings, validate_all_settings
from astra_ledger.insights import format_amount, insight_card_html
from astra_ledger.models.conversation import AgentStatus, ImageAttachment, TurnRole
from astra_ledger.orchestrator import LedgerSession, create_ledger_session


# Page configuration
st.set_page_config(
    page_title="Astra Ledger",
    page_icon="💠",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .insight-box {
        padding: 20px;
        background-color: #eef2ff;
        border-radius: 10px;
        border-left: 5px solid #4f46e5;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
    .mode-footer {
        font-size: 0.8em;
        color: #6b7280;
    }
</style>
""", unsafe_allow_html=True)


TOP_CATEGORY_COUNT = 4


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def get_session() -> LedgerSession:
    """Get or create the ledger session for this browser session."""
    if "ledger_session" not in st.session_state:
        session = create_ledger_session()
        run_async(session.start())
        st.session_state.ledger_session = session
    return st.session_state.ledger_session


def main():
    """Main application entry point."""
    session = get_session()

    # Sidebar navigation
    st.sidebar.title("💠 Astra Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["💬 Ledger", "📊 Insights", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Try:**
        - "Coffee 120, taxi 300"
        - Upload a receipt photo
        - "How much did I spend on food?"
        """
    )

    if page == "💬 Ledger":
        render_ledger_page(session)
    elif page == "📊 Insights":
        render_insights_page(session)
    elif page == "⚙️ Settings":
        render_settings_page()

    render_mode_footer(session)


def render_ledger_page(session: LedgerSession):
    """Render the chat page."""
    st.title("💬 Ledger")

    symbol = get_settings().app.currency_symbol

    for turn in session.turns:
        role = "user" if turn.role == TurnRole.USER else "assistant"
        with st.chat_message(role):
            if turn.image is not None:
                st.image(turn.image.data, width=240)
            if turn.text:
                st.markdown(turn.text)
            for candidate in turn.transactions:
                st.markdown(
                    f"- **{candidate.item}** · {symbol}{format_amount(candidate.amount)} "
                    f"· _{candidate.category}_"
                )

    uploaded_file = st.file_uploader(
        "Attach a receipt (optional)",
        type=get_settings().app.supported_formats_list,
        key=f"receipt_{len(session.turns)}",
    )

    prompt = st.chat_input(
        "Type an expense or ask a question...",
        disabled=session.is_processing,
    )

    if prompt is None:
        return

    image = None
    if uploaded_file is not None:
        if uploaded_file.size > get_settings().app.max_upload_size_bytes:
            st.error("That image is too large. Please upload a smaller photo.")
            return
        try:
            image = ImageAttachment.from_bytes(
                uploaded_file.getvalue(),
                mime_type=uploaded_file.type,
                filename=uploaded_file.name,
            )
        except ValueError as e:
            st.error(f"Could not read that image: {e}")
            return

    status_placeholder = st.empty()

    def show_status(status: AgentStatus) -> None:
        if status == AgentStatus.IDLE:
            status_placeholder.empty()
        else:
            status_placeholder.info(f"⏳ {status.label}")

    status_placeholder.info(f"⏳ {AgentStatus.IDLE.label}")
    run_async(session.send(prompt, image, on_status=show_status))
    st.rerun()


def render_insights_page(session: LedgerSession):
    """Render the dashboard."""
    st.title("📊 Insights")

    symbol = get_settings().app.currency_symbol
    transactions = session.transactions

    if st.button("🔄 Refresh"):
        st.rerun()

    # Advisor tip (computed once per session)
    tip = session.insight_tip
    if tip is None and transactions:
        with st.spinner("Thinking..."):
            tip = run_async(session.refresh_insight())
    if tip:
        st.markdown(insight_card_html(tip), unsafe_allow_html=True)

    col1, col2 = st.columns(2)

    with col1:
        st.markdown("### Total Spent")
        st.markdown(
            f'<div class="big-number">{symbol}{format_amount(session.total)}</div>',
            unsafe_allow_html=True,
        )
        st.caption(f"{len(transactions)} transactions")

    with col2:
        st.markdown("### Top Categories")
        stats = session.category_stats[:TOP_CATEGORY_COUNT]
        if not stats:
            st.info("No spending yet.")
        for stat in stats:
            st.markdown(f"**{stat.name}** · {symbol}{format_amount(stat.amount)}")
            st.progress(stat.percentage / 100, text=f"{stat.percentage}%")

    st.markdown("---")
    st.subheader("📋 Transactions")

    if not transactions:
        st.info(
            "📋 Your expenses will appear here once you add them. "
            "Use the 'Ledger' page to add your first one."
        )
        return

    for record in transactions:
        col1, col2, col3, col4 = st.columns([4, 2, 2, 1])
        with col1:
            st.markdown(f"**{record.item}**")
            if record.created_at:
                st.caption(record.created_at.strftime("%d %B %Y, %H:%M"))
        with col2:
            st.markdown(f"{symbol}{format_amount(record.amount)}")
        with col3:
            st.markdown(f"_{record.category}_")
        with col4:
            if st.button("🗑️", key=f"delete_{record.id}"):
                if run_async(session.delete(record.id)):
                    st.rerun()
                else:
                    st.error("Failed to delete. Please try again.")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Gemini (AI)", "gemini"),
        ("Firebase (Cloud Storage)", "firebase"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.warning(f"⚠️ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "Without Firebase settings, expenses are stored in a local file."
    )


def render_mode_footer(session: LedgerSession):
    label = "☁️ Cloud Sync Active" if session.mode == "cloud" else "💾 Local Storage Mode"
    st.sidebar.markdown("---")
    st.sidebar.markdown(
        f'<div class="mode-footer">{label} · user {session.user_id}</div>',
        unsafe_allow_html=True,
    )


if __name__ == "__main__":
    main()
