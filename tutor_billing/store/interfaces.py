"""
Abstract interface for the record store.

The billing engine depends on this abstraction, not on Airtable, which
keeps the engine testable with an in-memory store.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.records import (
    Cancellation,
    Customer,
    InvoiceDraft,
    InvoiceRecord,
    Session,
    Subscription,
)


class RecordStore(ABC):
    """
    Abstract interface for record store operations.

    Every method is a single blocking request that either returns data or
    raises StoreError. Timeouts and retries belong to the implementation.
    The store never deletes records.
    """

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """
        Fetch one customer.

        Returns:
            The customer, or None if no such record exists
        """
        pass

    @abstractmethod
    def list_active_customers(self) -> List[Customer]:
        """List all active customers."""
        pass

    @abstractmethod
    def list_sessions(self, period: str, customer_id: Optional[str] = None) -> List[Session]:
        """
        List sessions of a period.

        Args:
            period: Period (YYYY-MM); matched by period tag or start date
            customer_id: Restrict to sessions linked to this customer
        """
        pass

    @abstractmethod
    def list_cancellations(
        self,
        period: str,
        customer_id: Optional[str] = None
    ) -> List[Cancellation]:
        """List cancellations tagged with a period."""
        pass

    @abstractmethod
    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[Subscription]:
        """List subscriptions (active-for-month is decided by the engine)."""
        pass

    @abstractmethod
    def list_invoices(self, period: str, customer_id: Optional[str] = None) -> List[InvoiceRecord]:
        """List invoices of a period."""
        pass

    @abstractmethod
    def create_invoice(self, draft: InvoiceDraft) -> InvoiceRecord:
        """
        Create an invoice.

        Manual adjustment fields are not written on create.
        """
        pass

    @abstractmethod
    def update_invoice(self, invoice_id: str, draft: InvoiceDraft) -> InvoiceRecord:
        """
        Update an invoice.

        The draft's manual adjustment values are written back verbatim.
        """
        pass
