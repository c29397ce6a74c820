"""
Reconcile package.

Re-exports the two entry points so callers do not depend on module layout.
"""

from directory_bootstrap.reconcile.bootstrap import BootstrapReport, run_bootstrap
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.reconciler import Reconciler, reconcile
from directory_bootstrap.reconcile.retry import RetryPolicy

__all__ = ["BootstrapReport", "ExecutionMode", "Reconciler", "RetryPolicy", "reconcile", "run_bootstrap"]
