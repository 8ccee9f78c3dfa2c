"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import Notifier, BatchConfirmation, ReleaseConfirmation

__all__ = ['Notifier', 'BatchConfirmation', 'ReleaseConfirmation']
