import pytest

from errors import NavigationError
from identity import SIGNED_OUT, RESOLVING, AuthState, AuthStatus, IdentityProvider
from router import (TRANSITIONS, Audience, RouteState, View, ViewRouter, admissible,
                    audience_for, initial_state, transition)

from conftest import PASSWORD

EXPECTED = {
    "operator": {View.DASHBOARD, View.HECTARES, View.TOKENS, View.EMISSIONS},
    "admin": {View.ADMIN_DASHBOARD, View.USER_MANAGEMENT, View.OPERATOR_DETAILS},
    "manager": {View.NO_ACCESS},
    "anonymous": {View.SIGN_IN, View.SIGN_UP},
    "resolving": {View.LOADING},
}


def signed_in(role, user_id="u1"):
    return AuthState(AuthStatus.PRESENT, user_id=user_id, email=f"{role}@example.com",
                     full_name=role.title(), role=role, is_active=True)


@pytest.mark.parametrize("role", sorted(EXPECTED))
@pytest.mark.parametrize("view", list(View))
def test_admissible_exactly_for_the_roles_views(role, view):
    assert admissible(role, view) == (view in EXPECTED[role])


def test_admissible_rejects_unknown_views():
    assert not admissible("operator", "reports")


def test_no_view_belongs_to_two_audiences():
    seen = {}
    for audience, table in TRANSITIONS.items():
        for view in table:
            assert view not in seen, f"{view} shared by {seen.get(view)} and {audience}"
            seen[view] = audience
        for targets in table.values():
            assert targets <= set(table)


def test_initial_views():
    assert initial_state(RESOLVING).view is View.LOADING
    assert initial_state(SIGNED_OUT).view is View.SIGN_IN
    assert initial_state(signed_in("operator")).view is View.DASHBOARD
    assert initial_state(signed_in("admin")).view is View.ADMIN_DASHBOARD
    assert initial_state(signed_in("manager")).view is View.NO_ACCESS


def test_operator_views_return_to_dashboard():
    router = ViewRouter(signed_in("operator"))
    for target in (View.HECTARES, View.TOKENS, View.EMISSIONS):
        router.navigate(target)
        assert router.state.view is target
        assert router.back().view is View.DASHBOARD


def test_operator_cannot_jump_between_sections():
    router = ViewRouter(signed_in("operator"))
    router.navigate(View.HECTARES)
    with pytest.raises(NavigationError):
        router.navigate(View.TOKENS)
    assert router.state.view is View.HECTARES


@pytest.mark.parametrize("target", [View.ADMIN_DASHBOARD, View.USER_MANAGEMENT,
                                    View.OPERATOR_DETAILS, View.SIGN_IN])
def test_operator_cannot_reach_other_audiences(target):
    router = ViewRouter(signed_in("operator"))
    with pytest.raises(NavigationError):
        router.navigate(target, operator_id="u2")
    assert router.state == RouteState(Audience.OPERATOR, View.DASHBOARD)


def test_admin_cannot_reach_operator_views():
    router = ViewRouter(signed_in("admin"))
    for target in (View.DASHBOARD, View.HECTARES, View.TOKENS, View.EMISSIONS):
        with pytest.raises(NavigationError):
            router.navigate(target)
    assert router.state.view is View.ADMIN_DASHBOARD


def test_operator_details_only_from_user_management():
    router = ViewRouter(signed_in("admin"))
    with pytest.raises(NavigationError):
        router.navigate(View.OPERATOR_DETAILS, operator_id="op-1")

    router.navigate(View.USER_MANAGEMENT)
    state = router.navigate(View.OPERATOR_DETAILS, operator_id="op-1")
    assert state.operator_id == "op-1"

    with pytest.raises(NavigationError):
        router.navigate(View.ADMIN_DASHBOARD)
    state = router.back()
    assert state == RouteState(Audience.ADMIN, View.USER_MANAGEMENT)
    assert router.back().view is View.ADMIN_DASHBOARD


def test_operator_details_needs_an_operator():
    state = RouteState(Audience.ADMIN, View.USER_MANAGEMENT)
    with pytest.raises(NavigationError):
        transition(state, View.OPERATOR_DETAILS)


def test_signed_out_visitor_only_switches_login_modes():
    router = ViewRouter(SIGNED_OUT)
    assert router.navigate(View.SIGN_UP).view is View.SIGN_UP
    assert router.navigate("sign-in").view is View.SIGN_IN
    with pytest.raises(NavigationError):
        router.navigate(View.DASHBOARD)


def test_loading_has_no_way_out():
    router = ViewRouter(RESOLVING)
    for target in View:
        with pytest.raises(NavigationError):
            router.navigate(target, operator_id="x")
    with pytest.raises(NavigationError):
        router.back()


def test_unknown_view_is_rejected():
    router = ViewRouter(signed_in("operator"))
    with pytest.raises(NavigationError):
        router.navigate("settings")


def test_listeners_see_every_move():
    router = ViewRouter(signed_in("operator"))
    moves = []
    router.subscribe(lambda old, new: moves.append((old.view, new.view)))
    router.navigate(View.TOKENS)
    router.back()
    assert moves == [(View.DASHBOARD, View.TOKENS), (View.TOKENS, View.DASHBOARD)]


def test_audience_follows_role():
    assert audience_for(signed_in("admin")) is Audience.ADMIN
    assert audience_for(signed_in("manager")) is Audience.RESTRICTED
    assert audience_for(SIGNED_OUT) is Audience.ANONYMOUS


def test_router_follows_identity_provider(store, operator):
    provider = IdentityProvider(store)
    router = ViewRouter(provider.current)
    provider.subscribe(router.on_auth_change)
    assert router.state.view is View.LOADING

    provider.resolve()
    assert router.state.view is View.SIGN_IN

    provider.sign_in("op1@example.com", PASSWORD)
    assert router.state.view is View.DASHBOARD
    router.navigate(View.EMISSIONS)

    provider.sign_out()
    assert router.state == RouteState(Audience.ANONYMOUS, View.SIGN_IN)
