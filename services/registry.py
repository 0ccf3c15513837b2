"""
Per-request wiring of the records services.

One store, resolver and service set per request: a teacher's assignment scope
is read once and reused for the rest of that request, and an admin edit is
visible on the very next request.
"""

from dataclasses import dataclass

from flask import current_app, g
from flask_login import current_user

from services.assignment_resolver import AssignmentResolver
from services.auth_service import caller_from_user
from services.entity_store import EntityStore
from services.mark_record_service import MarkRecordService
from services.performance_aggregator import PerformanceAggregator


@dataclass
class RecordsServices:
    store: EntityStore
    resolver: AssignmentResolver
    marks: MarkRecordService
    performance: PerformanceAggregator


def build_services(config) -> RecordsServices:
    store = EntityStore(percentage_function=config.get("LATEST_PERCENTAGE_FUNCTION"))
    resolver = AssignmentResolver(store)
    return RecordsServices(
        store=store,
        resolver=resolver,
        marks=MarkRecordService(store, resolver),
        performance=PerformanceAggregator(store, config.get("MARKS_HISTORY_LIMIT", 10)),
    )


def records() -> RecordsServices:
    if "records" not in g:
        g.records = build_services(current_app.config)
    return g.records


def current_caller():
    return caller_from_user(current_user)
