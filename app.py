# app.py
import logging

import streamlit as st

import config
from admin import admin_dashboard, operator_details, user_management
from auth import login_screen
from database import init_db, RecordStore
from errors import EcoCarbonError
from identity import IdentityProvider, bootstrap_admin
from router import View, ViewRouter
from views import (ViewContext, dashboard, emissions_view, hectares_view, loading,
                   no_access, tokens_view)

logger = logging.getLogger(__name__)

RENDERERS = {
    View.LOADING: loading,
    View.SIGN_IN: login_screen,
    View.SIGN_UP: login_screen,
    View.NO_ACCESS: no_access,
    View.DASHBOARD: dashboard,
    View.HECTARES: hectares_view,
    View.TOKENS: tokens_view,
    View.EMISSIONS: emissions_view,
    View.ADMIN_DASHBOARD: admin_dashboard,
    View.USER_MANAGEMENT: user_management,
    View.OPERATOR_DETAILS: operator_details,
}

st.set_page_config(page_title="EcoCarbon", page_icon="🌱", layout="wide")

# 1. Logging & database
config.configure_logging()
init_db()

# 2. One identity provider and router per browser session
if "provider" not in st.session_state:
    provider = IdentityProvider(RecordStore())
    router = ViewRouter(provider.current)
    provider.subscribe(router.on_auth_change)
    st.session_state.provider = provider
    st.session_state.router = router
    if config.ADMIN_EMAIL and config.ADMIN_PASSWORD:
        try:
            bootstrap_admin(provider, config.ADMIN_EMAIL, config.ADMIN_PASSWORD, config.ADMIN_NAME)
        except EcoCarbonError as exc:
            logger.error("Could not provision admin %s: %s", config.ADMIN_EMAIL, exc)

provider = st.session_state.provider
router = st.session_state.router

# 3. Pick up role/active changes made by an admin since the last run
provider.refresh()

# 4. Render the admitted view
ctx = ViewContext(store=provider.store, provider=provider, router=router, auth=provider.current)
RENDERERS[router.state.view](ctx)
