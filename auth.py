import streamlit as st

from errors import AuthError, NavigationError
from router import View


def _switch(ctx, target):
    try:
        ctx.router.navigate(target)
    except NavigationError as exc:
        st.warning(str(exc))
        return
    st.rerun()


def login_screen(ctx):
    st.title("🌱 EcoCarbon")
    st.caption("Carbon emission monitoring and management for sugarcane production.")

    if ctx.router.state.view is View.SIGN_UP:
        st.subheader("Create Account")
        full_name = st.text_input("Full name", key="signup_name")
        email = st.text_input("Email", key="signup_email")
        password = st.text_input("Password", type="password", key="signup_password")
        if st.button("Create Account", key="signup_submit"):
            if full_name and email and password:
                try:
                    ctx.provider.sign_up(email, password, full_name)
                    st.rerun()
                except AuthError as exc:
                    st.error(str(exc))
            else:
                st.error("Please fill all fields")
        if st.button("Already have an account? Sign in", key="to_sign_in"):
            _switch(ctx, View.SIGN_IN)
    else:
        st.subheader("Sign In")
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Sign In", key="login_submit"):
            try:
                ctx.provider.sign_in(email, password)
                st.rerun()
            except AuthError as exc:
                st.error(str(exc))
        if st.button("No account? Sign up", key="to_sign_up"):
            _switch(ctx, View.SIGN_UP)
