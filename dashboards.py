# dashboards.py
"""Views that need several record sets at once load them here, concurrently."""
import logging
from dataclasses import dataclass
from typing import Optional

from aggregation import (AdminSummary, OperatorSummary, summarize_admin,
                         summarize_operator)
from database import Profile
from managers import (EmissionManager, HectareManager, LoadResult, TokenManager,
                      require_admin)

logger = logging.getLogger(__name__)

RECORD_SETS = ("hectares", "emissions", "tokens")


@dataclass(frozen=True)
class OperatorDashboard:
    hectares: LoadResult
    emissions: LoadResult
    tokens: LoadResult
    summary: OperatorSummary

    @property
    def failures(self):
        return [name for name in RECORD_SETS if getattr(self, name).failed]


@dataclass(frozen=True)
class OperatorDetails:
    operator: Optional[Profile]
    dashboard: OperatorDashboard
    error: Optional[Exception] = None


@dataclass(frozen=True)
class EmissionsPage:
    emissions: LoadResult
    hectares: LoadResult
    parcel_options: list

    @property
    def parcel_names(self):
        return {h.id: h.name for h in self.hectares.records}


@dataclass(frozen=True)
class AdminDashboard:
    operators: LoadResult
    summary: AdminSummary
    failures: tuple = ()


def _operator_loaders(store, auth_state, owner_id):
    return {
        "hectares": HectareManager(store, auth_state, owner_id).fetch,
        "emissions": EmissionManager(store, auth_state, owner_id).fetch,
        "tokens": TokenManager(store, auth_state, owner_id).fetch,
    }


def _operator_dashboard(results):
    return OperatorDashboard(
        hectares=results["hectares"],
        emissions=results["emissions"],
        tokens=results["tokens"],
        summary=summarize_operator(results["hectares"].records,
                                   results["emissions"].records,
                                   results["tokens"].records),
    )


def load_operator_dashboard(store, auth_state, scope, owner_id=None):
    """Hectares, emissions and tokens of one operator plus their summary."""
    owner_id = owner_id or auth_state.user_id
    results = scope.gather(_operator_loaders(store, auth_state, owner_id))
    return _operator_dashboard(results)


def load_operator_details(store, auth_state, operator_id, scope):
    """Admin view of one operator: the profile and the operator's dashboard."""
    require_admin(auth_state)
    def load_profile():
        profile = store.get("profiles", operator_id)
        return [profile] if profile else []

    loaders = _operator_loaders(store, auth_state, operator_id)
    loaders["profile"] = load_profile
    results = scope.gather(loaders)
    profile = results["profile"]
    operator = profile.records[0] if profile.records else None
    return OperatorDetails(operator=operator, dashboard=_operator_dashboard(results),
                           error=profile.error)


def load_admin_dashboard(store, auth_state, scope):
    """Totals across all operators."""
    require_admin(auth_state)
    results = scope.gather({
        "operators": lambda: store.select("profiles", role="operator"),
        "hectares": lambda: store.select("hectares"),
        "emissions": lambda: store.select("emissions"),
        "tokens": lambda: store.select("tokens"),
    })
    summary = summarize_admin(results["operators"].records, results["hectares"].records,
                              results["emissions"].records, results["tokens"].records)
    failures = tuple(name for name, result in results.items() if result.failed)
    if failures:
        logger.warning("Admin totals computed without %s", ", ".join(failures))
    return AdminDashboard(operators=results["operators"], summary=summary, failures=failures)


def load_emissions_page(store, auth_state, scope):
    """An operator's emissions together with the parcels they can be recorded against."""
    emissions = EmissionManager(store, auth_state)
    results = scope.gather({
        "emissions": emissions.fetch,
        "hectares": HectareManager(store, auth_state).fetch,
    })
    return EmissionsPage(
        emissions=results["emissions"],
        hectares=results["hectares"],
        parcel_options=emissions.hectare_options(results["hectares"].records),
    )
