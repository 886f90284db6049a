"""
Orchestration of a full synchronisation run.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.asset_store import AssetStore
from ..core.connector import SourceConnector, TargetConnector
from ..core.logging import LogContext
from ..core.models import (
    EXPORT_ORDER,
    GLOBAL_SCOPE,
    GLOBAL_TYPES,
    AssetType,
    NaturalKey,
    PropagationResult,
    ReconciliationResult,
)
from ..export.mapper import ExportMapper
from ..export.pipeline import PropagationPipeline
from ..reconcile.reconciler import Reconciler


logger = logging.getLogger(__name__)

SCOPED_TYPES = [t for t in EXPORT_ORDER if t not in GLOBAL_TYPES]


class SyncRunner:
    """
    Main orchestrator for catalog synchronisation.

    Manages the workflow:
    1. Reconcile servers and sites globally
    2. Reconcile every scoped type top-down for each site
    3. Propagate once for all sites, or after each site
    """

    def __init__(
        self,
        store: AssetStore,
        source: SourceConnector,
        target: Optional[TargetConnector] = None,
        mapper: Optional[ExportMapper] = None,
        propagate_mode: str = "global",
    ):
        """
        Initialize the sync runner.

        Args:
            store: Local asset store
            source: Source catalog adapter
            target: Downstream catalog adapter (None = reconcile only)
            mapper: Export mapper
            propagate_mode: 'global' (one propagation after all sites) or 'site'
        """
        if propagate_mode not in ("global", "site"):
            raise ValueError(f"Unknown propagate mode: {propagate_mode}")

        self.store = store
        self.source = source
        self.target = target
        self.propagate_mode = propagate_mode
        self.reconciler = Reconciler(store, source)
        self.pipeline = PropagationPipeline(store, target, mapper) if target else None

    def reconcile_type(self, asset_type: AssetType, scope: str) -> ReconciliationResult:
        asset_type = AssetType(asset_type)
        with LogContext(scope=scope, asset_type=asset_type.value):
            return self.reconciler.reconcile(asset_type, scope)

    def reconcile_global(self) -> List[ReconciliationResult]:
        """Reconcile servers, then sites."""
        return [
            self.reconcile_type(asset_type, GLOBAL_SCOPE)
            for asset_type in EXPORT_ORDER if asset_type in GLOBAL_TYPES
        ]

    def reconcile_scope(self, scope: str, include_global: bool = True) -> List[ReconciliationResult]:
        """
        Reconcile every type for one site, parents before children.

        Args:
            scope: Site id
            include_global: Also reconcile servers and sites first

        Returns:
            One ReconciliationResult per type
        """
        results = self.reconcile_global() if include_global else []
        for asset_type in SCOPED_TYPES:
            results.append(self.reconcile_type(asset_type, scope))
        return results

    def known_sites(self) -> List[str]:
        """Ids of every active site in the store."""
        return [r.asset_id for r in self.store.get_all_active(AssetType.SITE)]

    def propagate(
        self,
        scope: Optional[str] = None,
        asset_types: Optional[List[AssetType]] = None,
        key: Optional[NaturalKey] = None,
    ) -> PropagationResult:
        """Propagate pending changes, optionally narrowed to types or one record."""
        if self.pipeline is None:
            raise ValueError("No target connector configured")
        with LogContext(scope=scope or (key.scope_id if key else "all")):
            return self.pipeline.propagate(scope, asset_types=asset_types, key=key)

    def run(self, sites: Optional[List[str]] = None, run_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Run a full synchronisation.

        Args:
            sites: Site ids to reconcile (default: every active site after the site pass)
            run_id: Optional run ID for tracking

        Returns:
            Run report with reconciliation and propagation results
        """
        run_id = run_id or str(uuid.uuid4())
        started_at = datetime.now(timezone.utc)
        reconciliations: List[ReconciliationResult] = []
        propagations: List[PropagationResult] = []

        with LogContext(run_id=run_id):
            logger.info(f"Starting sync run {run_id}")

            reconciliations.extend(self.reconcile_global())
            site_ids = list(sites) if sites else self.known_sites()
            logger.info(f"Reconciling {len(site_ids)} sites")

            for site_id in site_ids:
                reconciliations.extend(self.reconcile_scope(site_id, include_global=False))
                if self.pipeline and self.propagate_mode == "site":
                    propagations.append(self.propagate(site_id))

            if self.pipeline and self.propagate_mode == "global":
                propagations.append(self.propagate(None))

            success = all(r.success for r in reconciliations) and all(p.success for p in propagations)
            report = {
                "run_id": run_id,
                "started_at": started_at.isoformat(),
                "completed_at": datetime.now(timezone.utc).isoformat(),
                "success": success,
                "sites": site_ids,
                "reconciliation": [r.to_dict() for r in reconciliations],
                "propagation": [p.to_dict() for p in propagations],
            }
            logger.info(f"Sync run {run_id} finished: {'OK' if success else 'FAILED'}")

        return report
