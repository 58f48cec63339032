"""The reconciliation pass: match, execute, aggregate, publish."""

from kubexec.reconcile.aggregator import NO_MATCH_REPORT, ReportEntry, aggregate, split_report
from kubexec.reconcile.matcher import match_containers
from kubexec.reconcile.reconciler import Reconciler

__all__ = [
    "NO_MATCH_REPORT",
    "ReportEntry",
    "aggregate",
    "split_report",
    "match_containers",
    "Reconciler",
]
