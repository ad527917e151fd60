# managers.py
"""
Per-entity view-models: load, validate, create, update and delete.

A manager is built for one signed-in ``AuthState`` and one owner scope. An
operator works on its own records; an admin may open any operator's records
read-only. Loads never raise: a failed read is logged and comes back as an
empty ``LoadResult`` carrying the error. Mutations raise ValidationError
before touching the store and MutationError when the store refuses.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor, CancelledError
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

import config
from aggregation import summarize_hectares, summarize_emissions, summarize_tokens
from database import ROLES, HECTARE_STATUSES, EMISSION_TYPES, TOKEN_TYPES
from errors import (AccessDeniedError, MutationError, RetrievalError,
                    ValidationError)

logger = logging.getLogger(__name__)


class LoadResult(NamedTuple):
    records: list
    error: Optional[Exception] = None

    @property
    def failed(self):
        return self.error is not None


class FetchScope:
    """
    Runs record loads concurrently for the lifetime of one view render.

    Use as a context manager. On exit, loads that have not started are
    cancelled and anything still running is abandoned: its result is dropped.
    """

    def __init__(self, name="view", workers=None):
        self.name = name
        self._workers = workers or config.FETCH_WORKERS
        self._executor = None
        self._closed = False

    def __enter__(self):
        self._executor = ThreadPoolExecutor(max_workers=self._workers,
                                            thread_name_prefix=f"fetch-{self.name}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def closed(self):
        return self._closed

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def gather(self, loaders):
        """
        Run ``{name: callable}`` concurrently and wait for all of them.

        Returns ``{name: LoadResult}``. One failing loader does not affect the
        others; its result is empty with the error attached.
        """
        if self._closed or self._executor is None:
            raise RuntimeError(f"fetch scope {self.name!r} is not open")
        futures = {name: self._executor.submit(loader) for name, loader in loaders.items()}
        results = {}
        for name, future in futures.items():
            try:
                results[name] = LoadResult(list(future.result()))
            except CancelledError as exc:
                results[name] = LoadResult([], exc)
            except Exception as exc:
                logger.error("Loading %s for %s failed: %s", name, self.name, exc)
                results[name] = LoadResult([], exc)
        return results


def can_mutate(auth_state, owner_id):
    """Only an active operator may change records, and only its own."""
    return (auth_state.signed_in and auth_state.role == "operator"
            and auth_state.is_active and auth_state.user_id == owner_id)


def can_view(auth_state, owner_id):
    if not auth_state.signed_in:
        return False
    return auth_state.role == "admin" or auth_state.user_id == owner_id


def require_admin(auth_state):
    if not (auth_state.signed_in and auth_state.role == "admin"):
        raise AccessDeniedError("Only administrators can manage users")


def parse_number(value, name, allow_zero=True):
    """Parse form input into a finite, non-negative float."""
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required", field=name)
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", field=name) from None
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a number", field=name)
    if number < 0 or (number == 0 and not allow_zero):
        bound = "zero or more" if allow_zero else "greater than zero"
        raise ValidationError(f"{name} must be {bound}", field=name)
    return number


def parse_date(value, name):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)", field=name) from None


def parse_datetime(value, name):
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be a date and time", field=name) from None


def required_text(value, name):
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{name} is required", field=name)
    return text


def optional_text(value):
    text = (value or "").strip()
    return text or None


def choice(value, name, options):
    if value not in options:
        raise ValidationError(f"{name} must be one of {', '.join(options)}", field=name)
    return value


class EntityManager:
    """Load and create for one table, scoped to one owner."""

    table = None
    order_by = "created_at"

    def __init__(self, store, auth_state, owner_id=None):
        self.store = store
        self.auth = auth_state
        self.owner_id = owner_id or auth_state.user_id
        if not can_view(auth_state, self.owner_id):
            raise AccessDeniedError(f"Not allowed to view these {self.table}")

    def fetch(self):
        """All records in scope, newest first. Raises RetrievalError."""
        return self.store.select(self.table, order_by=self.order_by, owner_id=self.owner_id)

    def load(self):
        try:
            return LoadResult(self.fetch())
        except RetrievalError as exc:
            logger.error("Could not load %s for %s: %s", self.table, self.owner_id, exc)
            return LoadResult([], exc)

    def summarize(self, records):
        raise NotImplementedError

    def validate(self, fields):
        """Return the cleaned column values for an insert."""
        raise NotImplementedError

    def _require_owner(self):
        if not can_mutate(self.auth, self.owner_id):
            raise AccessDeniedError(f"Only the owner can change these {self.table}")

    def create(self, **fields):
        """Validate and insert, then return a fresh load."""
        self._require_owner()
        values = self.validate(fields)
        record = self.store.insert(self.table, owner_id=self.owner_id, **values)
        logger.info("Created %s %s for %s", self.table, record.id, self.owner_id)
        return self.load()


class HectareManager(EntityManager):
    table = "hectares"

    def summarize(self, records):
        return summarize_hectares(records)

    def validate(self, fields):
        return {
            "name": required_text(fields.get("name"), "name"),
            "size": parse_number(fields.get("size"), "size", allow_zero=False),
            "location": optional_text(fields.get("location")),
            "status": choice(fields.get("status", "active"), "status", HECTARE_STATUSES),
        }

    def _owned(self, record_id):
        record = self.store.get(self.table, record_id)
        if record is None or record.owner_id != self.owner_id:
            raise MutationError(f"No {self.table} record {record_id}", table=self.table)
        return record

    def update(self, record_id, **fields):
        self._require_owner()
        values = self.validate(fields)
        self._owned(record_id)
        self.store.update(self.table, record_id, **values)
        logger.info("Updated %s %s", self.table, record_id)
        return self.load()

    def delete(self, record_id, confirm):
        """
        Delete after ``confirm()`` returns True.

        Returns False, touching nothing, when confirmation is declined. A
        failed delete raises MutationError and the record stays listed.
        """
        self._require_owner()
        if not confirm():
            return False
        self._owned(record_id)
        self.store.delete(self.table, record_id)
        logger.info("Deleted %s %s", self.table, record_id)
        return True


class EmissionManager(EntityManager):
    table = "emissions"
    order_by = "emission_date"

    def summarize(self, records):
        return summarize_emissions(records)

    def hectare_options(self, hectares):
        """The owner's active parcels, offered when recording an emission."""
        return [h for h in hectares if h.owner_id == self.owner_id and h.status == "active"]

    def validate(self, fields):
        hectare_id = optional_text(fields.get("hectare_id"))
        if hectare_id is not None:
            hectare = self.store.get("hectares", hectare_id)
            if hectare is None or hectare.owner_id != self.owner_id:
                raise ValidationError("Parcel does not belong to this operator", field="hectare_id")
        return {
            "hectare_id": hectare_id,
            "emission_amount": parse_number(fields.get("emission_amount"), "emission_amount"),
            "emission_date": parse_date(fields.get("emission_date") or date.today(), "emission_date"),
            "emission_type": choice(fields.get("emission_type", "cultivation"),
                                    "emission_type", EMISSION_TYPES),
            "notes": optional_text(fields.get("notes")),
        }


class TokenManager(EntityManager):
    table = "tokens"
    order_by = "transaction_date"

    def summarize(self, records):
        return summarize_tokens(records)

    def validate(self, fields):
        return {
            "amount": parse_number(fields.get("amount"), "amount"),
            "token_type": choice(fields.get("token_type", "earned"), "token_type", TOKEN_TYPES),
            "value": parse_number(fields.get("value"), "value"),
            "transaction_date": parse_datetime(fields.get("transaction_date"), "transaction_date"),
            "blockchain_tx": optional_text(fields.get("blockchain_tx")),
        }


class UserManager:
    """Admin-only management of operator accounts."""

    EDITABLE = ("full_name", "role", "is_active")

    def __init__(self, store, provider, auth_state):
        require_admin(auth_state)
        self.store = store
        self.provider = provider
        self.auth = auth_state

    def fetch(self):
        return self.store.select("profiles", order_by="created_at", role="operator")

    def load(self):
        try:
            return LoadResult(self.fetch())
        except RetrievalError as exc:
            logger.error("Could not load operators: %s", exc)
            return LoadResult([], exc)

    @staticmethod
    def search(operators, term):
        term = (term or "").strip().lower()
        if not term:
            return list(operators)
        return [op for op in operators
                if term in (op.full_name or "").lower() or term in op.email.lower()]

    def create_user(self, email, password, full_name, is_active=True):
        """Provision an operator identity and profile, then reload."""
        full_name = required_text(full_name, "full_name")
        self.provider.provision(email, password, full_name, role="operator",
                                is_active=bool(is_active), created_by=self.auth.user_id)
        logger.info("Admin %s created operator %s", self.auth.email, email)
        return self.load()

    def _target(self, user_id):
        """The profile to change. Apart from their own, admins only manage operators."""
        profile = self.store.get("profiles", user_id)
        if profile is None:
            raise MutationError(f"No profiles record {user_id}", table="profiles")
        if user_id != self.auth.user_id and profile.role != "operator":
            logger.warning("Admin %s tried to change %s profile %s",
                           self.auth.email, profile.role, user_id)
            raise AccessDeniedError("Only operator accounts can be managed here")
        return profile

    def _owns_records(self, user_id):
        return any(self.store.select(table, owner_id=user_id)
                   for table in ("hectares", "emissions", "tokens"))

    def update_user(self, user_id, **fields):
        """
        Change name, role or active flag. Email and password cannot be changed here.

        An operator who still owns hectares, emissions or tokens keeps the
        operator role, so that every record stays operator-owned.
        """
        unknown = set(fields) - set(self.EDITABLE)
        if unknown:
            raise ValidationError(f"Cannot change {', '.join(sorted(unknown))}",
                                  field=sorted(unknown)[0])
        values = {}
        if "full_name" in fields:
            values["full_name"] = required_text(fields["full_name"], "full_name")
        if "role" in fields:
            values["role"] = choice(fields["role"], "role", ROLES)
        if "is_active" in fields:
            values["is_active"] = bool(fields["is_active"])
        if user_id == self.auth.user_id and (
                values.get("is_active") is False or values.get("role", "admin") != "admin"):
            raise ValidationError("You cannot demote or deactivate your own account")
        profile = self._target(user_id)
        if (profile.role == "operator" and values.get("role", "operator") != "operator"
                and self._owns_records(user_id)):
            raise ValidationError("This operator still owns hectares, emissions or tokens "
                                  "and must stay an operator", field="role")
        self.store.update("profiles", user_id, **values)
        logger.info("Admin %s updated profile %s: %s", self.auth.email, user_id, sorted(values))
        return self.load()

    def delete_user(self, user_id, confirm):
        """Remove an operator profile (and its records). The sign-in identity is kept."""
        if user_id == self.auth.user_id:
            raise ValidationError("You cannot delete your own account")
        self._target(user_id)
        if not confirm():
            return False
        self.store.delete("profiles", user_id)
        logger.info("Admin %s deleted profile %s", self.auth.email, user_id)
        return True
