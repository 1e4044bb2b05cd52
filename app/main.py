"""
Streamlit Frontend for the Finance Tracker

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Recurring transactions are recorded when their page is opened
3. Clear error messages in simple language
4. Visual feedback for all operations

Opening the recurring transactions page runs a materialization pass
before the definitions are shown, so the user always sees an up to date
list of what was recorded.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st
from pydantic import ValidationError

from fintrack.budgets import BudgetService
from fintrack.config import get_settings
from fintrack.models.budget import BudgetPeriod
from fintrack.models.transaction import (
    ExpenseCategory,
    Frequency,
    TransactionKind,
    TransactionQuery,
)
from fintrack.orchestrator import StatisticsFlow, create_app_components
from fintrack.recurring.service import (
    DefinitionRejectedError,
    RecurringService,
    view_notices,
)
from fintrack.services.storage import DuplicateError


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
    page_icon="💶",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
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
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    recurring_service, budget_service, statistics_flow, _ = get_components()
    owner_id = get_settings().app.default_owner_id

    st.sidebar.title("💶 Finance Tracker")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🔁 Recurring", "📋 Transactions", "💰 Budgets", "📊 Statistics", "⚙️ Settings"],
        index=0,
    )

    if page == "🔁 Recurring":
        render_recurring_page(recurring_service, owner_id)
    elif page == "📋 Transactions":
        render_transactions_page(statistics_flow, owner_id)
    elif page == "💰 Budgets":
        render_budgets_page(budget_service, owner_id)
    elif page == "📊 Statistics":
        render_statistics_page(statistics_flow, owner_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_recurring_page(service: RecurringService, owner_id: str):
    """Render the recurring transactions page."""
    st.title("🔁 Recurring Transactions")

    definitions, result = run_async(service.load_view(owner_id))

    for level, message in view_notices(result):
        if level == "success":
            st.success(f"✅ {message}")
        else:
            st.info(message)

    with st.expander("➕ Add recurring transaction"):
        render_definition_form(service, owner_id)

    st.markdown("---")

    if not definitions:
        st.info("No recurring transactions yet.")
        return

    for definition in definitions:
        col1, col2, col3, col4 = st.columns([3, 2, 2, 1])
        with col1:
            label = definition.description
            if definition.category:
                label = f"{label} ({definition.category.value})"
            st.markdown(f"**{label}**")
        with col2:
            sign = "+" if definition.kind == TransactionKind.INCOME else "-"
            st.markdown(f"{sign}{definition.amount:,.2f} {definition.currency}")
        with col3:
            until = f" until {definition.end_date}" if definition.end_date else ""
            st.markdown(f"{definition.frequency.value} from {definition.start_date}{until}")
        with col4:
            if st.button("🗑️", key=f"delete-{definition.id}"):
                run_async(service.delete_definition(definition.id))
                st.rerun()


def render_definition_form(service: RecurringService, owner_id: str):
    with st.form("new_definition"):
        kind = st.selectbox(
            "Type",
            options=list(TransactionKind),
            format_func=lambda k: k.value.title(),
        )
        amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
        description = st.text_input("Description")
        category = st.selectbox(
            "Category (expenses only)",
            options=[None] + list(ExpenseCategory),
            format_func=lambda c: "-" if c is None else c.value,
        )
        frequency = st.selectbox(
            "Repeats",
            options=list(Frequency),
            format_func=lambda f: f.value.title(),
            index=2,
        )
        start_date = st.date_input("Start date", value=date.today())
        has_end = st.checkbox("Ends on a date")
        end_date = st.date_input("End date", value=date.today()) if has_end else None

        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return

    data = {
        "kind": kind,
        "amount": Decimal(str(amount)),
        "description": description,
        "category": category if kind == TransactionKind.EXPENSE else None,
        "frequency": frequency,
        "start_date": start_date,
        "end_date": end_date,
    }

    try:
        _, validation = run_async(service.create_definition(owner_id, data))
    except DefinitionRejectedError as e:
        st.error(service.validator.get_user_friendly_summary(e.result))
        return
    except Exception as e:
        st.error(f"Error: {str(e)}")
        return

    st.success("✅ Saved.")
    if validation.warnings:
        # Keep the warnings on screen; the list refreshes on the next visit
        st.warning(service.validator.get_user_friendly_summary(validation))
    else:
        st.rerun()


def render_transactions_page(flow: StatisticsFlow, owner_id: str):
    """Render the transactions list page."""
    st.title("📋 Transactions")

    col1, col2 = st.columns(2)
    with col1:
        kind = st.selectbox(
            "Filter by Type",
            options=[None] + list(TransactionKind),
            format_func=lambda k: "All" if k is None else k.value.title(),
        )
    with col2:
        category = st.selectbox(
            "Filter by Category",
            options=[None] + list(ExpenseCategory),
            format_func=lambda c: "All Categories" if c is None else c.value,
        )

    result = run_async(flow.run(TransactionQuery(
        owner_id=owner_id,
        query_type="list",
        kind_filter=kind,
        category_filter=category,
        limit=200,
    )))

    if not result.success:
        st.error(f"Error: {result.error_message}")
        return
    if not result.data_found:
        st.info("No transactions found.")
        return

    st.dataframe(result.results, use_container_width=True)


def render_budgets_page(service: BudgetService, owner_id: str):
    """Render budgets with spending for the current period."""
    st.title("💰 Budgets")

    with st.expander("➕ Add budget"):
        with st.form("new_budget"):
            category = st.selectbox(
                "Category",
                options=list(ExpenseCategory),
                format_func=lambda c: c.value,
            )
            amount = st.number_input("Limit", min_value=0.0, step=10.0, format="%.2f")
            period = st.selectbox(
                "Period",
                options=list(BudgetPeriod),
                format_func=lambda p: p.value.title(),
                index=1,
            )
            submitted = st.form_submit_button("💾 Save", type="primary")

        if submitted:
            try:
                run_async(service.create_budget(owner_id, {
                    "category": category,
                    "amount": Decimal(str(amount)),
                    "period": period,
                }))
                st.rerun()
            except DuplicateError:
                st.error("This category already has a budget for that period.")
            except ValidationError:
                st.error("Please enter a limit greater than zero.")

    st.markdown("---")

    statuses = run_async(service.budget_status(owner_id))
    if not statuses:
        st.info("No budgets yet.")
        return

    warning_percent = get_settings().app.budget_warning_percent

    for status in statuses:
        budget = status.budget
        col1, col2 = st.columns([5, 1])
        with col1:
            st.markdown(
                f"**{budget.category.value}** - {budget.amount:,.2f} {budget.currency} "
                f"per {budget.period.value}"
            )
            st.progress(min(status.percent_used, 100.0) / 100)
            if status.over_limit:
                st.error(f"Over by {-status.remaining:,.2f} (spent {status.spent:,.2f})")
            elif status.percent_used >= warning_percent:
                st.warning(f"Spent {status.spent:,.2f}, {status.remaining:,.2f} left")
            else:
                st.caption(f"Spent {status.spent:,.2f}, {status.remaining:,.2f} left")
        with col2:
            if st.button("🗑️", key=f"delete-budget-{budget.id}"):
                run_async(service.delete_budget(budget.id))
                st.rerun()


def render_statistics_page(flow: StatisticsFlow, owner_id: str):
    """Render the balance and statistics page."""
    st.title("📊 Statistics")

    today = date.today()
    date_range = st.date_input(
        "Date Range",
        value=[today.replace(month=1, day=1), today],
    )
    # Only the start is set while the user is still picking the range
    date_from = date_range[0] if len(date_range) > 0 else None
    date_to = date_range[1] if len(date_range) > 1 else None

    balance = run_async(flow.run(TransactionQuery(
        owner_id=owner_id,
        query_type="balance",
        date_from=date_from,
        date_to=date_to,
    )))

    if not balance.success:
        st.error(f"Error: {balance.error_message}")
        return

    totals = balance.aggregation_result or {}
    col1, col2, col3 = st.columns(3)
    col1.metric("Income", f"{totals.get('income', 0):,.2f}")
    col2.metric("Expenses", f"{totals.get('expenses', 0):,.2f}")
    col3.metric("Balance", f"{totals.get('balance', 0):,.2f}")

    st.markdown("---")
    st.markdown("### Expenses by category")

    by_category = run_async(flow.run(TransactionQuery(
        owner_id=owner_id,
        query_type="aggregate",
        aggregation_type="sum",
        group_by="category",
        kind_filter=TransactionKind.EXPENSE,
        date_from=date_from,
        date_to=date_to,
    )))
    if by_category.data_found:
        st.bar_chart(by_category.aggregation_result["breakdown"])
    else:
        st.info("No expenses in this period.")

    st.markdown("### Monthly totals")
    by_month = run_async(flow.run(TransactionQuery(
        owner_id=owner_id,
        query_type="aggregate",
        aggregation_type="sum",
        group_by="month",
        date_from=date_from,
        date_to=date_to,
    )))
    if by_month.data_found:
        st.bar_chart(by_month.aggregation_result["breakdown"])


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    from fintrack.config import validate_all_settings

    status = validate_all_settings()

    sections = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Recurring Transactions", "recurring"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown(
        "To configure the application, set the `GOOGLE_SHEETS_` and `RECURRING_` "
        "variables (and optionally `DEFAULT_OWNER_ID`) in the environment or a `.env` file."
    )


if __name__ == "__main__":
    main()
