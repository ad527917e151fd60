# admin.py
import pandas as pd
import streamlit as st

from aggregation import kg_to_tonnes
from dashboards import load_admin_dashboard, load_operator_details
from database import ROLES
from errors import EcoCarbonError
from managers import FetchScope, UserManager
from router import View
from views import (confirm_prompt, emissions_by_type_chart, emissions_frame, go,
                   go_back, hectares_frame, show_error, sidebar, tokens_frame)


def operators_frame(operators):
    return pd.DataFrame([{
        "Name": op.full_name or "(no name)",
        "Email": op.email,
        "Status": "Active" if op.is_active else "Inactive",
        "Registered": op.created_at.date(),
    } for op in operators])


def admin_dashboard(ctx):
    sidebar(ctx)
    st.header("Administration")
    st.write("Manage operators and follow the program's overall figures.")

    with FetchScope("admin-dashboard") as scope:
        data = load_admin_dashboard(ctx.store, ctx.auth, scope)
    if data.failures:
        st.warning(f"Some figures are incomplete: could not load {', '.join(data.failures)}.")

    stats = data.summary
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Operators", stats.operator_count)
    col1.caption(f"{stats.active_operator_count} active")
    col2.metric("Total Hectares", f"{stats.total_hectares:.1f}")
    col2.caption("All operators")
    col3.metric("Tokens", f"{stats.total_tokens:.0f}")
    col3.caption("Credits generated")
    col4.metric("Emissions (t CO₂)", f"{kg_to_tonnes(stats.total_emissions):.1f}")
    col4.caption("Tonnes of CO₂")

    st.divider()
    if st.button("👥 Manage Operators", use_container_width=True):
        go(ctx, View.USER_MANAGEMENT)
    if stats.total_emissions:
        st.plotly_chart(emissions_by_type_chart(stats.emissions.by_type, "Emissions by Stage, all operators"),
                        use_container_width=True)


def user_management(ctx):
    sidebar(ctx)
    if st.button("← Back"):
        go_back(ctx)
    st.header("Operators")

    manager = UserManager(ctx.store, ctx.provider, ctx.auth)
    result = manager.load()
    if result.failed:
        st.error("Could not load operators. Try again in a moment.")

    with st.expander("➕ Create operator"):
        with st.form("new_operator", clear_on_submit=True):
            full_name = st.text_input("Full name")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            is_active = st.checkbox("Active user", value=True)
            submitted = st.form_submit_button("Create")
        if submitted:
            try:
                result = manager.create_user(email, password, full_name, is_active=is_active)
                st.success(f"Operator {email.strip()} created.")
            except EcoCarbonError as exc:
                show_error(exc)

    term = st.text_input("🔍 Search by name or email", key="operator_search")
    operators = manager.search(result.records, term)
    if not operators:
        st.info("No operators found." if term else "No operators registered yet.")
        return
    st.dataframe(operators_frame(operators), use_container_width=True, hide_index=True)

    by_id = {op.id: op for op in operators}
    selected = st.selectbox("Operator", list(by_id),
                            format_func=lambda i: f"{by_id[i].full_name or '(no name)'} <{by_id[i].email}>",
                            key="operator_selected")
    current = by_id[selected]
    if st.button("👁️ View details"):
        go(ctx, View.OPERATOR_DETAILS, operator_id=selected)

    with st.expander("✏️ Edit operator"):
        with st.form("edit_operator"):
            full_name = st.text_input("Full name", value=current.full_name or "")
            role = st.selectbox("Role", ROLES, index=ROLES.index(current.role))
            is_active = st.checkbox("Active user", value=current.is_active)
            updated = st.form_submit_button("Update")
        if updated:
            try:
                manager.update_user(selected, full_name=full_name, role=role, is_active=is_active)
                st.success("Operator updated.")
                st.rerun()
            except EcoCarbonError as exc:
                show_error(exc)

    key = f"delete_operator_{selected}"
    if st.button("🗑️ Delete operator"):
        st.session_state.pending_confirm = key
    decision = confirm_prompt(key, f"Delete {current.email}? Their parcels, emissions and tokens "
                                   "are removed too. This cannot be undone.")
    if decision is not None:
        try:
            if manager.delete_user(selected, confirm=lambda: decision):
                st.rerun()
        except EcoCarbonError as exc:
            show_error(exc)


def operator_details(ctx):
    sidebar(ctx)
    if st.button("← Back to Operators"):
        go_back(ctx)

    with FetchScope("operator-details") as scope:
        details = load_operator_details(ctx.store, ctx.auth, ctx.router.state.operator_id, scope)
    if details.operator is None:
        if details.error is not None:
            st.error("Could not load this operator. Try again in a moment.")
        else:
            st.warning("Operator not found.")
        return

    operator = details.operator
    data = details.dashboard
    st.header(operator.full_name or operator.email)
    st.caption(f"{operator.email} · {'Active' if operator.is_active else 'Inactive'} · "
               f"registered {operator.created_at.date()}")
    for name in data.failures:
        st.warning(f"Could not load {name}; showing zero for now.")

    stats = data.summary
    col1, col2, col3 = st.columns(3)
    col1.metric("Hectares", f"{stats.total_hectares:.1f}")
    col1.caption(f"{stats.active_hectares} active")
    col2.metric("Tokens", f"{stats.total_tokens:.2f}")
    col3.metric("Emissions (t CO₂)", f"{kg_to_tonnes(stats.total_emissions):.2f}")

    tab_hectares, tab_tokens, tab_emissions = st.tabs([
        f"Hectares ({len(data.hectares.records)})",
        f"Tokens ({len(data.tokens.records)})",
        f"Emissions ({len(data.emissions.records)})",
    ])
    with tab_hectares:
        if data.hectares.records:
            st.dataframe(hectares_frame(data.hectares.records), use_container_width=True, hide_index=True)
        else:
            st.info("No parcels registered.")
    with tab_tokens:
        if data.tokens.records:
            st.dataframe(tokens_frame(data.tokens.records), use_container_width=True, hide_index=True)
        else:
            st.info("No token transactions.")
    with tab_emissions:
        if data.emissions.records:
            names = {h.id: h.name for h in data.hectares.records}
            st.dataframe(emissions_frame(data.emissions.records, names),
                         use_container_width=True, hide_index=True)
            st.plotly_chart(emissions_by_type_chart(stats.emissions.by_type), use_container_width=True)
        else:
            st.info("No emissions recorded.")
