"""markersync: project live record-store entities onto a map overlay.

Each tick reads the live entities from a SQLite record store, diffs them
against the markers of one overlay namespace, and applies the minimal set
of create/update/delete operations.  Icons are fetched once per identity
from a remote image source and fall back to a default icon on failure.
"""

__version__ = "0.1.0"
__description__ = (
    "Reconcile a map overlay's markers with a live entity record store"
)

from markersync.core.lifecycle import SyncService
from markersync.core.reconciler import ReconciliationEngine
from markersync.cli.app import app as cli

__all__ = ["ReconciliationEngine", "SyncService", "cli", "__version__"]
