"""
SkyRelay viewer: client-side reconciliation, debounced interest updates
and viewport selection.
"""

from viewer.reconciler import ClientReconciler
from viewer.debounce import Debouncer
from viewer.viewport import select_visible

__all__ = ['ClientReconciler', 'Debouncer', 'select_visible']
