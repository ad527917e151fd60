# views.py
from dataclasses import dataclass
from datetime import date

import pandas as pd
import plotly.express as px
import streamlit as st

from aggregation import kg_to_tonnes
from dashboards import load_emissions_page, load_operator_dashboard
from database import HECTARE_STATUSES, EMISSION_TYPES, TOKEN_TYPES
from errors import EcoCarbonError, NavigationError, ValidationError
from managers import EmissionManager, FetchScope, HectareManager, TokenManager
from router import View

STATUS_LABELS = {"active": "Active", "inactive": "Inactive", "harvested": "Harvested"}
EMISSION_TYPE_LABELS = {
    "cultivation": "Cultivation",
    "harvest": "Harvest",
    "transport": "Transport",
    "processing": "Processing",
}
TOKEN_TYPE_LABELS = {"earned": "Earned", "purchased": "Purchased", "retired": "Retired"}
EMISSION_COLORS = {
    "Cultivation": "#2ca02c",
    "Harvest": "#bcbd22",
    "Transport": "#ff7f0e",
    "Processing": "#9467bd",
}


@dataclass(frozen=True)
class ViewContext:
    """What every screen gets: the store, the identity provider, the router and who is signed in."""
    store: object
    provider: object
    router: object
    auth: object


def go(ctx, target, operator_id=None):
    try:
        ctx.router.navigate(target, operator_id=operator_id)
    except NavigationError as exc:
        st.warning(str(exc))
        return
    st.rerun()


def go_back(ctx):
    try:
        ctx.router.back()
    except NavigationError as exc:
        st.warning(str(exc))
        return
    st.rerun()


def sidebar(ctx):
    st.sidebar.title("🌱 EcoCarbon")
    st.sidebar.write(f"**{ctx.auth.full_name or ctx.auth.email}**")
    st.sidebar.caption(ctx.auth.role.capitalize())
    if st.sidebar.button("Sign out", key="sign_out"):
        ctx.provider.sign_out()
        st.rerun()


def show_error(exc):
    if isinstance(exc, ValidationError):
        st.warning(str(exc))
    else:
        st.error(str(exc))


def confirm_prompt(key, message):
    """Two-step confirmation. Returns True/False once answered, None while pending."""
    if st.session_state.get("pending_confirm") != key:
        return None
    st.warning(message)
    col1, col2 = st.columns(2)
    if col1.button("Yes, delete", key=f"{key}_yes"):
        st.session_state.pending_confirm = None
        return True
    if col2.button("Cancel", key=f"{key}_no"):
        st.session_state.pending_confirm = None
        return False
    return None


def hectares_frame(hectares):
    return pd.DataFrame([{
        "Name": h.name,
        "Size (ha)": h.size,
        "Location": h.location or "",
        "Status": STATUS_LABELS[h.status],
        "Created": h.created_at.date(),
    } for h in hectares])


def emissions_frame(emissions, parcel_names=None):
    parcel_names = parcel_names or {}
    return pd.DataFrame([{
        "Date": e.emission_date,
        "Type": EMISSION_TYPE_LABELS[e.emission_type],
        "Emission (kg CO₂)": e.emission_amount,
        "Parcel": parcel_names.get(e.hectare_id, ""),
        "Notes": e.notes or "",
    } for e in emissions])


def tokens_frame(tokens):
    return pd.DataFrame([{
        "Date": t.transaction_date.strftime("%Y-%m-%d %H:%M"),
        "Type": TOKEN_TYPE_LABELS[t.token_type],
        "Amount": t.amount,
        "Value ($)": t.value,
        "TX": f"{t.blockchain_tx[:16]}..." if t.blockchain_tx else "",
    } for t in tokens])


def emissions_by_type_chart(by_type, title="Emissions by Stage"):
    summary = pd.DataFrame([
        {"Stage": EMISSION_TYPE_LABELS[k], "Emissions (kg CO₂)": v} for k, v in by_type.items()
    ])
    fig = px.bar(
        summary,
        x="Stage",
        y="Emissions (kg CO₂)",
        color="Stage",
        color_discrete_map=EMISSION_COLORS,
        title=f"<b>{title}</b>",
        template="plotly_white",
    )
    fig.update_layout(plot_bgcolor="rgba(0,0,0,0)", yaxis=dict(showgrid=False), showlegend=False)
    return fig


def dashboard(ctx):
    sidebar(ctx)
    st.header(f"Welcome, {ctx.auth.first_name}")
    st.write("Manage your sugarcane operations and monitor your carbon emissions.")

    with FetchScope("dashboard") as scope:
        data = load_operator_dashboard(ctx.store, ctx.auth, scope)
    for name in data.failures:
        st.warning(f"Could not load your {name}; showing zero for now.")

    stats = data.summary
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Hectares", f"{stats.total_hectares:.1f}")
    col1.caption(f"{stats.active_hectares} active")
    col2.metric("Tokens", f"{stats.total_tokens:.0f}")
    col2.caption("Carbon credits")
    col3.metric("Emissions (t CO₂)", f"{kg_to_tonnes(stats.total_emissions):.1f}")
    col3.caption("Tonnes of CO₂")
    col4.metric("Account", "Active" if ctx.auth.is_active else "Inactive")

    st.divider()
    col1, col2, col3 = st.columns(3)
    if col1.button("🗺️ Manage Hectares", use_container_width=True):
        go(ctx, View.HECTARES)
    if col2.button("🪙 Manage Tokens", use_container_width=True):
        go(ctx, View.TOKENS)
    if col3.button("🏭 Manage Emissions", use_container_width=True):
        go(ctx, View.EMISSIONS)

    if stats.total_emissions:
        st.plotly_chart(emissions_by_type_chart(stats.emissions.by_type), use_container_width=True)


def hectares_view(ctx):
    sidebar(ctx)
    if st.button("← Back to Dashboard"):
        go_back(ctx)
    st.header("Manage Hectares")
    st.write("Your sugarcane fields.")
    summary_box = st.container()

    manager = HectareManager(ctx.store, ctx.auth)
    result = manager.load()
    if result.failed:
        st.error("Could not load your parcels. Try again in a moment.")

    with st.expander("➕ New parcel"):
        with st.form("new_hectare", clear_on_submit=True):
            name = st.text_input("Field name")
            size = st.number_input("Size (hectares)", min_value=0.0, step=0.1, format="%.2f")
            location = st.text_input("Location")
            status = st.selectbox("Status", HECTARE_STATUSES, format_func=STATUS_LABELS.get)
            submitted = st.form_submit_button("Create")
        if submitted:
            try:
                result = manager.create(name=name, size=size, location=location, status=status)
                st.success(f"Parcel {name.strip()} created.")
            except EcoCarbonError as exc:
                show_error(exc)

    by_id = {h.id: h for h in result.records}
    if by_id:
        with st.expander("✏️ Edit or delete a parcel"):
            selected = st.selectbox("Parcel", list(by_id), format_func=lambda i: by_id[i].name,
                                    key="hectare_selected")
            current = by_id[selected]
            with st.form("edit_hectare"):
                name = st.text_input("Field name", value=current.name)
                size = st.number_input("Size (hectares)", min_value=0.0, step=0.1,
                                       format="%.2f", value=float(current.size))
                location = st.text_input("Location", value=current.location or "")
                status = st.selectbox("Status", HECTARE_STATUSES,
                                      index=HECTARE_STATUSES.index(current.status),
                                      format_func=STATUS_LABELS.get)
                updated = st.form_submit_button("Update")
            if updated:
                try:
                    result = manager.update(selected, name=name, size=size,
                                            location=location, status=status)
                    st.success("Parcel updated.")
                except EcoCarbonError as exc:
                    show_error(exc)

            key = f"delete_hectare_{selected}"
            if st.button("🗑️ Delete parcel", key="delete_hectare"):
                st.session_state.pending_confirm = key
            decision = confirm_prompt(key, f"Delete {current.name}? This cannot be undone.")
            if decision is not None:
                try:
                    if manager.delete(selected, confirm=lambda: decision):
                        result = manager.load()
                        st.success("Parcel deleted.")
                except EcoCarbonError as exc:
                    show_error(exc)

    summary = manager.summarize(result.records)
    with summary_box:
        col1, col2, col3 = st.columns(3)
        col1.metric("Total Hectares", f"{summary.total_size:.1f}")
        col2.metric("Registered Fields", summary.count)
        col3.metric("Active Fields", summary.active_count)

    if result.records:
        st.dataframe(hectares_frame(result.records), use_container_width=True, hide_index=True)
    else:
        st.info("No parcels registered yet.")


def emissions_view(ctx):
    sidebar(ctx)
    if st.button("← Back to Dashboard"):
        go_back(ctx)
    st.header("Manage Emissions")
    st.write("Record emissions from cultivation, harvest, transport and processing.")
    summary_box = st.container()

    manager = EmissionManager(ctx.store, ctx.auth)
    with FetchScope("emissions") as scope:
        page = load_emissions_page(ctx.store, ctx.auth, scope)
    result = page.emissions
    if result.failed:
        st.error("Could not load your emissions. Try again in a moment.")
    if page.hectares.failed:
        st.warning("Could not load your parcels; emissions can still be recorded without one.")
    parcels = page.parcel_options
    parcel_names = page.parcel_names

    with st.expander("➕ Record emission"):
        with st.form("new_emission", clear_on_submit=True):
            choices = [""] + [h.id for h in parcels]
            hectare_id = st.selectbox(
                "Parcel", choices,
                format_func=lambda i: parcel_names.get(i) or "No specific parcel",
            )
            emission_type = st.selectbox("Stage", EMISSION_TYPES, format_func=EMISSION_TYPE_LABELS.get)
            amount = st.number_input("Amount (kg CO₂)", min_value=0.0, step=0.01, format="%.2f")
            emission_date = st.date_input("Date", value=date.today())
            notes = st.text_area("Notes")
            submitted = st.form_submit_button("Record")
        if submitted:
            try:
                result = manager.create(hectare_id=hectare_id, emission_amount=amount,
                                        emission_date=emission_date, emission_type=emission_type,
                                        notes=notes)
                st.success("Emission recorded.")
            except EcoCarbonError as exc:
                show_error(exc)

    summary = manager.summarize(result.records)
    with summary_box:
        cols = st.columns(5)
        cols[0].metric("Total (t CO₂)", f"{summary.total_tonnes:.2f}")
        for col, (kind, kg) in zip(cols[1:], summary.by_type.items()):
            col.metric(f"{EMISSION_TYPE_LABELS[kind]} (kg)", f"{kg:.1f}")

    if result.records:
        st.plotly_chart(emissions_by_type_chart(summary.by_type), use_container_width=True)
        st.dataframe(emissions_frame(result.records, parcel_names),
                     use_container_width=True, hide_index=True)
    else:
        st.info("No emissions recorded yet.")


def tokens_view(ctx):
    sidebar(ctx)
    if st.button("← Back to Dashboard"):
        go_back(ctx)
    st.header("Manage Tokens")
    st.write("Your carbon credits and their value.")
    summary_box = st.container()

    manager = TokenManager(ctx.store, ctx.auth)
    result = manager.load()
    if result.failed:
        st.error("Could not load your tokens. Try again in a moment.")

    with st.expander("➕ Record token"):
        with st.form("new_token", clear_on_submit=True):
            amount = st.number_input("Amount (tokens)", min_value=0.0, step=0.01, format="%.2f")
            token_type = st.selectbox("Type", TOKEN_TYPES, format_func=TOKEN_TYPE_LABELS.get)
            value = st.number_input("Value ($)", min_value=0.0, step=0.01, format="%.2f")
            blockchain_tx = st.text_input("Transaction reference (optional)")
            submitted = st.form_submit_button("Record")
        if submitted:
            try:
                result = manager.create(amount=amount, token_type=token_type, value=value,
                                        blockchain_tx=blockchain_tx)
                st.success("Token recorded.")
            except EcoCarbonError as exc:
                show_error(exc)

    summary = manager.summarize(result.records)
    with summary_box:
        col1, col2, col3 = st.columns(3)
        col1.metric("Total Tokens", f"{summary.total_amount:.2f}")
        col2.metric("Total Value ($)", f"{summary.total_value:.2f}")
        col3.metric("Earned Tokens", f"{summary.earned_amount:.2f}")

    if result.records:
        st.dataframe(tokens_frame(result.records), use_container_width=True, hide_index=True)
    else:
        st.info("No token transactions yet.")


def no_access(ctx):
    sidebar(ctx)
    st.header("No dashboard for this account")
    st.info(f"The {ctx.auth.role} role has no dashboard yet. Ask an administrator for access.")


def loading(ctx):
    with st.spinner("Loading..."):
        ctx.provider.resolve()
    st.rerun()
