"""
fleet_config -- workflow catalog and runtime settings.

Responsibility:
    Provides the workflow catalog through ``get_workflow_catalog()``: the
    YAML files under ``fleet_config/workflows`` are loaded, validated and
    frozen once per process.  Also exposes ``FleetSettings`` for
    environment-backed runtime knobs.

Architecture position:
    Configuration -- sits above ``fleet_kernel`` and below
    ``fleet_services`` / ``fleet_modules``.  The kernel MUST NEVER import
    from ``fleet_config``; services receive the catalog by injection.

Failure modes:
    - ``WorkflowConfigurationError`` -- malformed YAML or a workflow that
      fails structural validation.  Raised at load time, never mid-request.

Audit relevance:
    Every load emits a ``fleet_workflow_catalog_loaded`` log entry with
    the catalog checksum, tying each recorded transition back to the exact
    workflow definitions that governed it.
"""

from __future__ import annotations

import threading
from pathlib import Path

from fleet_config.loader import load_catalog
from fleet_config.settings import FleetSettings
from fleet_kernel.domain.workflow import WorkflowCatalog
from fleet_kernel.logging_config import get_logger

_logger = get_logger("config")

_catalog: WorkflowCatalog | None = None
_lock = threading.Lock()


def get_workflow_catalog(directory: Path | None = None) -> WorkflowCatalog:
    """Return the process-wide catalog, loading it on first use.

    Passing ``directory`` bypasses the cache and loads that directory.
    """
    global _catalog
    if directory is not None:
        return _load(directory)
    with _lock:
        if _catalog is None:
            _catalog = _load(None)
        return _catalog


def reset_workflow_catalog() -> None:
    global _catalog
    with _lock:
        _catalog = None


def _load(directory: Path | None) -> WorkflowCatalog:
    catalog = load_catalog(directory)
    _logger.info(
        "fleet_workflow_catalog_loaded",
        extra={
            "checksum": catalog.checksum,
            "kinds": [k.value for k in catalog.kinds],
        },
    )
    return catalog


__all__ = [
    "FleetSettings",
    "get_workflow_catalog",
    "reset_workflow_catalog",
]
