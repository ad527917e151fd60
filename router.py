# router.py
"""
View router and role gate.

The signed-in role picks an *audience*, and each audience owns a closed set
of views with an explicit transition table. No view belongs to two
audiences, and anything outside the table is rejected with NavigationError.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from errors import NavigationError
from identity import AuthStatus

logger = logging.getLogger(__name__)


class View(str, enum.Enum):
    LOADING = "loading"
    SIGN_IN = "sign-in"
    SIGN_UP = "sign-up"
    NO_ACCESS = "no-access"
    DASHBOARD = "dashboard"
    HECTARES = "hectares"
    TOKENS = "tokens"
    EMISSIONS = "emissions"
    ADMIN_DASHBOARD = "admin-dashboard"
    USER_MANAGEMENT = "user-management"
    OPERATOR_DETAILS = "operator-details"


class Audience(str, enum.Enum):
    RESOLVING = "resolving"
    ANONYMOUS = "anonymous"
    OPERATOR = "operator"
    ADMIN = "admin"
    RESTRICTED = "restricted"  # signed in with a role that has no dashboard


# view -> views it may move to
TRANSITIONS = {
    Audience.RESOLVING: {
        View.LOADING: frozenset(),
    },
    Audience.ANONYMOUS: {
        View.SIGN_IN: frozenset({View.SIGN_UP}),
        View.SIGN_UP: frozenset({View.SIGN_IN}),
    },
    Audience.OPERATOR: {
        View.DASHBOARD: frozenset({View.HECTARES, View.TOKENS, View.EMISSIONS}),
        View.HECTARES: frozenset({View.DASHBOARD}),
        View.TOKENS: frozenset({View.DASHBOARD}),
        View.EMISSIONS: frozenset({View.DASHBOARD}),
    },
    Audience.ADMIN: {
        View.ADMIN_DASHBOARD: frozenset({View.USER_MANAGEMENT}),
        View.USER_MANAGEMENT: frozenset({View.ADMIN_DASHBOARD, View.OPERATOR_DETAILS}),
        View.OPERATOR_DETAILS: frozenset({View.USER_MANAGEMENT}),
    },
    Audience.RESTRICTED: {
        View.NO_ACCESS: frozenset(),
    },
}

INITIAL_VIEW = {
    Audience.RESOLVING: View.LOADING,
    Audience.ANONYMOUS: View.SIGN_IN,
    Audience.OPERATOR: View.DASHBOARD,
    Audience.ADMIN: View.ADMIN_DASHBOARD,
    Audience.RESTRICTED: View.NO_ACCESS,
}

BACK = {
    View.HECTARES: View.DASHBOARD,
    View.TOKENS: View.DASHBOARD,
    View.EMISSIONS: View.DASHBOARD,
    View.USER_MANAGEMENT: View.ADMIN_DASHBOARD,
    View.OPERATOR_DETAILS: View.USER_MANAGEMENT,
}

ROLE_AUDIENCE = {
    "operator": Audience.OPERATOR,
    "admin": Audience.ADMIN,
}


def audience_for(auth_state):
    if auth_state.status is AuthStatus.RESOLVING:
        return Audience.RESOLVING
    if auth_state.status is AuthStatus.ABSENT:
        return Audience.ANONYMOUS
    return ROLE_AUDIENCE.get(auth_state.role, Audience.RESTRICTED)


def reachable(audience):
    return frozenset(TRANSITIONS[Audience(audience)])


def audience_for_role(role):
    if role in ROLE_AUDIENCE:
        return ROLE_AUDIENCE[role]
    try:
        return Audience(role)
    except ValueError:
        return Audience.RESTRICTED


def admissible(role, view):
    """True when ``view`` belongs to the audience of ``role``."""
    try:
        view = View(view)
    except ValueError:
        return False
    return view in reachable(audience_for_role(role))


@dataclass(frozen=True)
class RouteState:
    audience: Audience
    view: View
    operator_id: Optional[str] = None


def initial_state(auth_state):
    audience = audience_for(auth_state)
    return RouteState(audience, INITIAL_VIEW[audience])


def transition(state, target, operator_id=None):
    """Return the state after moving to ``target``, or raise NavigationError."""
    try:
        target = View(target)
    except ValueError:
        raise NavigationError(f"Unknown view {target!r}") from None
    allowed = TRANSITIONS[state.audience].get(state.view, frozenset())
    if target not in allowed:
        raise NavigationError(f"{target.value} is not reachable from {state.view.value}")
    if target is View.OPERATOR_DETAILS:
        if not operator_id:
            raise NavigationError("Operator details need an operator")
        return RouteState(state.audience, target, operator_id)
    return RouteState(state.audience, target)


class ViewRouter:
    """Holds the current RouteState and follows the identity provider."""

    def __init__(self, auth_state):
        self.state = initial_state(auth_state)
        self._listeners = []

    def subscribe(self, listener):
        """``listener(old_state, new_state)`` runs after every change of view."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _move(self, new_state):
        old_state, self.state = self.state, new_state
        if old_state != new_state:
            for listener in list(self._listeners):
                listener(old_state, new_state)
        return new_state

    def on_auth_change(self, auth_state):
        """Reset to the audience's initial view when the signed-in identity changes role."""
        audience = audience_for(auth_state)
        if audience is not self.state.audience:
            self._move(initial_state(auth_state))
        return self.state

    def navigate(self, target, operator_id=None):
        try:
            new_state = transition(self.state, target, operator_id)
        except NavigationError:
            logger.warning("Rejected navigation from %s to %s for %s",
                           self.state.view.value, getattr(target, "value", target),
                           self.state.audience.value)
            raise
        return self._move(new_state)

    def back(self):
        target = BACK.get(self.state.view)
        if target is None:
            raise NavigationError(f"{self.state.view.value} has nowhere to go back to")
        return self.navigate(target)
