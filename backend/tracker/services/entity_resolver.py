"""
Entity resolution: map a Classification to at most one existing Application.

Emails carry no Application id, so matching runs an ordered cascade of strategies
scoped to the classification's company (case-insensitive) and stops at the first hit:

1. company + role                    (classification has a role)
2. company + null role, then fill it (classification has a role)
3. company + null role               (classification has no role)
4. any application for the company, most recently created first

Strategy 4 may attach a role-less email to the wrong application when the same
company has two tracked roles. That ambiguity is a product decision and is kept.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..email_classifier import Classification
from ..models import Application
from .application_store import ApplicationStore

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    application: Application
    strategy: str
    enriched_role: bool = False


Strategy = Callable[[ApplicationStore, Classification], Optional[Resolution]]


def match_company_and_role(store: ApplicationStore, c: Classification) -> Optional[Resolution]:
    if not c.role:
        return None
    app = store.find_by_company_and_role(c.company, c.role)
    return Resolution(app, "company_and_role") if app else None


def match_null_role_and_enrich(store: ApplicationStore, c: Classification) -> Optional[Resolution]:
    if not c.role:
        return None
    app = store.find_by_company_with_null_role(c.company)
    if not app:
        return None
    store.update_role(app, c.role)
    logger.info(f"Filled role for application {app.id} ({app.company}): {c.role}")
    return Resolution(app, "null_role_enriched", enriched_role=True)


def match_null_role(store: ApplicationStore, c: Classification) -> Optional[Resolution]:
    if c.role:
        return None
    app = store.find_by_company_with_null_role(c.company)
    return Resolution(app, "null_role") if app else None


def match_any_for_company(store: ApplicationStore, c: Classification) -> Optional[Resolution]:
    app = store.find_most_recent_by_company(c.company)
    return Resolution(app, "company_fallback") if app else None


DEFAULT_STRATEGIES: Sequence[Strategy] = (
    match_company_and_role,
    match_null_role_and_enrich,
    match_null_role,
    match_any_for_company,
)


def resolve_application(
    store: ApplicationStore,
    classification: Classification,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Optional[Resolution]:
    """Return the first strategy hit, or None when a new Application should be created."""
    if not classification.company:
        return None
    for strategy in strategies:
        resolution = strategy(store, classification)
        if resolution is not None:
            logger.debug(
                f"Resolved {classification.company!r}/{classification.role!r} "
                f"to application {resolution.application.id} via {resolution.strategy}"
            )
            return resolution
    return None
