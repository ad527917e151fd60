"""Smoke tests that run the whole Streamlit script."""
from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

from conftest import PASSWORD

APP = str(Path(__file__).resolve().parent.parent / "app.py")


@pytest.fixture
def app(db_url):
    at = AppTest.from_file(APP, default_timeout=30)
    return at.run()


def test_login_screen_is_shown_first(app):
    assert not app.exception
    assert app.title[0].value == "🌱 EcoCarbon"
    assert app.button(key="login_submit")


def test_switch_to_sign_up(app):
    app.button(key="to_sign_up").click().run()
    assert not app.exception
    assert app.text_input(key="signup_name")


def test_operator_signs_in_to_dashboard(app, operator):
    app.text_input(key="login_email").input("op1@example.com")
    app.text_input(key="login_password").input(PASSWORD)
    app.button(key="login_submit").click().run()
    app.run()
    assert not app.exception
    assert app.header[0].value == "Welcome, Ana"


def test_wrong_password_stays_on_login(app, operator):
    app.text_input(key="login_email").input("op1@example.com")
    app.text_input(key="login_password").input("wrong-pass")
    app.button(key="login_submit").click().run()
    assert app.error[0].value == "Invalid email or password"
    assert app.button(key="login_submit")
