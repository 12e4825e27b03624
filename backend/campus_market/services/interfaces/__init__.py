"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .inventory import InventoryStore
from .notifier import EmailMessage, Notifier

__all__ = ['InventoryStore', 'EmailMessage', 'Notifier']
