"""Shared module namespace for probe helpers."""

from . import (
    backend_api,
    config,
    data_types,
    datastore,
    exit_codes,
    poller,
    predicates,
    report,
    utils,
)

__all__ = [
    "backend_api",
    "config",
    "data_types",
    "datastore",
    "exit_codes",
    "poller",
    "predicates",
    "report",
    "utils",
]
