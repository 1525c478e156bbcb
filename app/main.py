"""
Streamlit Frontend for AssetFlow

The user interface for day-to-day bookkeeping: accounts, income,
expenses, transfers, statements and AI spending insights.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every action goes through the LedgerSession (never the storage directly)
3. Clear error messages in simple language
4. Visual feedback for all operations, including unsaved changes

The UI never computes balances itself. It renders what the engine reports.
"""

import asyncio
from datetime import datetime, time, timezone

import streamlit as st

from assetflow.agents import InsightError, InsufficientDataError
from assetflow.config import get_settings, validate_all_settings
from assetflow.export import (
    export_all_transactions_csv,
    export_filename,
    export_statement_csv,
)
from assetflow.ledger import ASSIGNABLE_ICONS, LedgerError, get_categories_by_type
from assetflow.models.ledger import CategoryType, TransactionType, TransferTransaction
from assetflow.models.reports import SortOrder, StatementFilter
from assetflow.orchestrator import InsightFlow, LedgerSession, create_app_components


# Page configuration
st.set_page_config(
    page_title="AssetFlow",
    page_icon="💰",
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
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> tuple[LedgerSession, InsightFlow]:
    """Get or create application components (cached)."""
    try:
        return create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize storage: {e}")
        return create_app_components(backend="memory")


def format_money(amount, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


def run_action(coro, success_message: str):
    """Run a session mutation and report the outcome."""
    try:
        result = run_async(coro)
    except LedgerError as e:
        st.error(f"❌ {e}")
        return None
    st.success(f"✅ {success_message}")
    return result


def main():
    """Main application entry point."""
    session, insight_flow = get_components()
    if not session.is_initialized:
        run_async(session.initialize())

    if session.needs_setup:
        render_setup_page(session)
        return

    # Sidebar navigation
    st.sidebar.title("💰 AssetFlow")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🏠 Dashboard", "🏦 Assets", "✍️ Record", "📄 Statement", "✨ Insights", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    if session.is_synced:
        st.sidebar.success("All changes saved")
    else:
        st.sidebar.warning(f"Changes not saved: {session.last_error}")

    # Route to appropriate page
    if page == "🏠 Dashboard":
        render_dashboard_page(session)
    elif page == "🏦 Assets":
        render_assets_page(session)
    elif page == "✍️ Record":
        render_record_page(session)
    elif page == "📄 Statement":
        render_statement_page(session)
    elif page == "✨ Insights":
        render_insights_page(session, insight_flow)
    elif page == "⚙️ Settings":
        render_settings_page(session)


def render_setup_page(session: LedgerSession):
    """First run: pick a currency."""
    st.title("👋 Welcome to AssetFlow")
    st.markdown(
        "Choose the currency for your ledger. "
        "We'll start you off with a **Cash** and a **Primary Bank** account."
    )

    currencies = get_settings().app.supported_currencies_list
    with st.form("setup"):
        currency = st.selectbox("Currency", currencies)
        if st.form_submit_button("Get started", type="primary"):
            if run_action(session.complete_setup(currency), "Ledger created") is not None:
                st.rerun()


def render_dashboard_page(session: LedgerSession):
    """Total balance and charts."""
    engine = session.engine
    currency = engine.currency

    st.title("🏠 Dashboard")
    st.markdown("Total balance")
    st.markdown(
        f'<div class="big-number">{format_money(engine.total_balance(), currency)}</div>',
        unsafe_allow_html=True,
    )

    st.markdown("---")
    st.markdown("### Income vs expenses")
    summary = session.monthly_summary()
    st.bar_chart(
        [
            {"Month": m.month, "Income": float(m.income), "Expense": float(m.expense)}
            for m in summary
        ],
        x="Month",
        y=["Income", "Expense"],
    )

    if engine.categories_enabled:
        st.markdown("### Spending by category (this month)")
        spending = session.spending_by_category()
        if spending:
            st.bar_chart(
                [{"Category": s.name, "Spent": float(s.value)} for s in spending],
                x="Category",
                y="Spent",
            )
        else:
            st.info("No categorized spending this month yet.")

    st.markdown("### Recent transactions")
    recent = session.statement()[:5]
    if not recent:
        st.info("No transactions yet. Use the 'Record' page to add one.")
    for tx in recent:
        st.markdown(describe_transaction(tx, currency))


def describe_transaction(tx, currency: str) -> str:
    when = tx.date.strftime("%Y-%m-%d %H:%M")
    amount = format_money(tx.amount, currency)
    orphan = " _(deleted account)_" if tx.is_orphaned else ""
    if isinstance(tx, TransferTransaction):
        line = f"🔁 **{amount}** {tx.account_name} → {tx.to_account_name}"
    elif tx.type == TransactionType.INCOME:
        line = f"⬆️ **+{amount}** into {tx.account_name}"
    elif tx.type == TransactionType.EXPENDITURE:
        line = f"⬇️ **-{amount}** from {tx.account_name}"
    else:
        line = f"🆕 {tx.account_name} opened with **{amount}**"
    remarks = f" · {tx.remarks}" if tx.remarks else ""
    return f"{when} · {line}{remarks}{orphan}"


def render_assets_page(session: LedgerSession):
    """List, add, rename and delete accounts."""
    engine = session.engine
    currency = engine.currency

    st.title("🏦 Assets")

    for account in engine.accounts:
        with st.expander(f"{account.name} · {format_money(account.balance, currency)}"):
            new_name = st.text_input("Name", value=account.name, key=f"rename_{account.id}")
            col1, col2 = st.columns(2)
            with col1:
                if st.button("Rename", key=f"rename_btn_{account.id}"):
                    run_action(session.rename_account(account.id, new_name), "Account renamed")
                    st.rerun()
            with col2:
                if st.button("Delete", key=f"delete_btn_{account.id}"):
                    run_action(session.delete_account(account.id), "Account deleted")
                    st.rerun()

    st.markdown("---")
    st.markdown("### Add an account")
    with st.form("add_account", clear_on_submit=True):
        name = st.text_input("Account name")
        opening = st.number_input("Opening balance", value=0.0, step=0.01, format="%.2f")
        if st.form_submit_button("Add account", type="primary"):
            run_action(session.create_account(name, opening), f"Added {name}")


def _category_options(session: LedgerSession, flow_type: TransactionType) -> list:
    if not session.engine.categories_enabled:
        return []
    kind = CategoryType.INCOME if flow_type == TransactionType.INCOME else CategoryType.EXPENSE
    return get_categories_by_type(session.engine.categories, kind)


def render_record_page(session: LedgerSession):
    """Record income, expenditure or a transfer."""
    engine = session.engine
    accounts = engine.accounts

    st.title("✍️ Record")
    if not accounts:
        st.warning("Add an account first on the 'Assets' page.")
        return

    names = {a.id: a.name for a in accounts}
    kind = st.radio("What happened?", ["Income", "Expenditure", "Transfer"], horizontal=True)

    if kind == "Transfer":
        if len(accounts) < 2:
            st.warning("You need at least two accounts to make a transfer.")
            return
        with st.form("transfer", clear_on_submit=True):
            source = st.selectbox("From", list(names), format_func=names.get)
            target = st.selectbox("To", list(names), format_func=names.get, index=1)
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            remarks = st.text_input("Remarks")
            if st.form_submit_button("Transfer", type="primary"):
                run_action(
                    session.record_transfer(amount, source, target, remarks),
                    "Transfer recorded",
                )
        return

    flow_type = TransactionType.INCOME if kind == "Income" else TransactionType.EXPENDITURE
    categories = _category_options(session, flow_type)
    with st.form("flow", clear_on_submit=True):
        account_id = st.selectbox("Account", list(names), format_func=names.get)
        amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
        category = None
        if categories:
            category = st.selectbox(
                "Category",
                [None] + [c.id for c in categories],
                format_func=lambda cid: "None" if cid is None else next(c.name for c in categories if c.id == cid),
            )
        remarks = st.text_input("Remarks")
        if st.form_submit_button(f"Record {kind.lower()}", type="primary"):
            run_action(
                session.record_flow(flow_type, amount, account_id, remarks, category),
                f"{kind} recorded",
            )


def render_statement_page(session: LedgerSession):
    """Filterable transaction list with CSV export and editing."""
    engine = session.engine
    currency = engine.currency

    st.title("📄 Statement")
    st.caption("Search tip: type + for income, - for expenses, = for transfers and new accounts.")

    names = {a.id: a.name for a in engine.accounts}
    col1, col2, col3 = st.columns(3)
    with col1:
        account_ids = st.multiselect("Accounts", list(names), format_func=names.get)
        show_creations = st.checkbox("Show account creations")
    with col2:
        search = st.text_input("Search remarks or category")
        newest_first = st.toggle("Newest first", value=True)
    with col3:
        date_range = st.date_input("Date range", value=[])

    date_from = date_to = None
    if len(date_range) == 2:
        date_from = datetime.combine(date_range[0], time.min, tzinfo=timezone.utc)
        date_to = datetime.combine(date_range[1], time.max, tzinfo=timezone.utc)

    try:
        statement_filter = StatementFilter(
            account_ids=account_ids,
            show_account_creations=show_creations,
            search_term=search or None,
            date_from=date_from,
            date_to=date_to,
            sort_order=SortOrder.DESC if newest_first else SortOrder.ASC,
        )
    except ValueError as e:
        st.error(f"❌ {e}")
        return

    transactions = session.statement(statement_filter)

    st.download_button(
        "⬇️ Export current view",
        data=export_statement_csv(transactions, engine.categories),
        file_name=export_filename("statement"),
        mime="text/csv",
        disabled=not transactions,
    )

    st.markdown("---")
    if not transactions:
        st.info("No transactions match these filters.")
        return

    for tx in transactions:
        with st.expander(describe_transaction(tx, currency)):
            if tx.type == TransactionType.ACCOUNT_CREATION:
                st.caption("Opening balances cannot be edited.")
                continue
            render_edit_form(session, tx)


def render_edit_form(session: LedgerSession, tx):
    with st.form(f"edit_{tx.id}"):
        amount = st.number_input(
            "Amount", value=float(tx.amount), min_value=0.0, step=0.01, format="%.2f"
        )
        remarks = st.text_input("Remarks", value=tx.remarks)
        col1, col2 = st.columns(2)
        with col1:
            save = st.form_submit_button("Save changes")
        with col2:
            delete = st.form_submit_button("Delete")

    if save:
        if isinstance(tx, TransferTransaction):
            run_action(session.edit_transfer(tx.id, amount, remarks), "Transfer updated")
        else:
            run_action(session.edit_flow(tx.id, amount, remarks), "Transaction updated")
        st.rerun()
    if delete:
        run_action(session.delete_flow(tx.id), "Transaction deleted")
        st.rerun()


def render_insights_page(session: LedgerSession, insight_flow: InsightFlow):
    """AI spending analysis."""
    st.title("✨ Insights")
    st.markdown("Click the button to analyze your recent transactions.")

    transactions = session.engine.transactions
    if not insight_flow.can_generate(transactions):
        st.info(
            f"You need at least {insight_flow.min_transactions} transactions "
            "to generate meaningful insights."
        )

    if st.button("✨ Generate Insights", type="primary", disabled=not insight_flow.can_generate(transactions)):
        with st.spinner("Analyzing..."):
            try:
                result = run_async(insight_flow.generate(transactions))
            except InsufficientDataError as e:
                st.warning(str(e))
            except InsightError:
                st.error("Failed to generate insights. Please try again later.")
            else:
                st.markdown("#### Your Financial Insights")
                st.markdown(result.insights)


def render_settings_page(session: LedgerSession):
    """Currency, categories, export, reset and service status."""
    engine = session.engine

    st.title("⚙️ Settings")

    st.markdown("### Currency")
    currencies = get_settings().app.supported_currencies_list
    current = engine.currency if engine.currency in currencies else currencies[0]
    currency = st.selectbox("Currency", currencies, index=currencies.index(current))
    if currency != engine.currency and st.button("Change currency"):
        run_action(session.set_currency(currency), f"Currency set to {currency}")
        st.rerun()

    st.markdown("---")
    st.markdown("### Categories")
    enabled = st.toggle("Use categories", value=engine.categories_enabled)
    if enabled != engine.categories_enabled:
        run_async(session.set_categories_enabled(enabled))
        st.rerun()

    if engine.categories_enabled:
        for kind in (CategoryType.EXPENSE, CategoryType.INCOME):
            st.markdown(f"**{kind.value.title()}**")
            for category in get_categories_by_type(engine.categories, kind):
                col1, col2 = st.columns([4, 1])
                with col1:
                    st.markdown(f"{category.name} · _{category.icon}_")
                with col2:
                    if not category.is_default and st.button("Delete", key=f"delcat_{category.id}"):
                        run_action(session.delete_category(category.id), "Category deleted")
                        st.rerun()

        with st.form("add_category", clear_on_submit=True):
            name = st.text_input("New category name")
            kind = st.selectbox("Type", list(CategoryType), format_func=lambda k: k.value.title())
            icon = st.selectbox("Icon", ASSIGNABLE_ICONS)
            if st.form_submit_button("Add category"):
                run_action(session.add_category(name, kind, icon), f"Added {name}")

    st.markdown("---")
    st.markdown("### Export")
    st.download_button(
        "⬇️ Export all transactions",
        data=export_all_transactions_csv(engine.transactions),
        file_name=export_filename("transactions"),
        mime="text/csv",
        disabled=not engine.transactions,
    )

    st.markdown("---")
    st.markdown("### Danger zone")
    confirm = st.checkbox("I understand this erases all accounts and transactions")
    if st.button("Reset all data", disabled=not confirm):
        run_async(session.reset())
        st.rerun()

    st.markdown("---")
    st.markdown("### Connection Status")
    status = validate_all_settings()
    for name, key in [
        ("Local storage", "local_storage"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
    ]:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.caption(f"Storage backend: {session.storage.backend_name}")


if __name__ == "__main__":
    main()
