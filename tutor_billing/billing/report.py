"""
Invoice KPI report for a billing period.

The billed amount of an invoice is its computed total plus the manual
adjustment an operator entered.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import pandas as pd

from ..models.records import InvoiceRecord
from ..store.normalize import to_number


REPORT_COLUMNS = [
    "invoice_id",
    "customer_id",
    "period",
    "sessions_total",
    "cancellations_total",
    "subscriptions_total",
    "total",
    "manual_adjustment",
    "billed",
    "approved",
    "paid",
    "link_sent",
]


@dataclass
class InvoiceReport:
    """
    KPIs of the invoices of one period.

    Attributes:
        period: Billing period (YYYY-MM)
        invoice_count: Number of invoices
        customer_count: Distinct customers with an invoice
        total_to_bill: Sum of billed amounts
        paid_total: Billed amount of paid invoices
        pending_total: Billed amount of unpaid invoices
        draft_total: Unpaid and not yet approved
        approved_unpaid_total: Approved but not yet paid
        collection_rate: paid_total / total_to_bill in percent
        pending_link_count: Approved, unpaid invoices whose link was not sent
        average_bill: total_to_bill per customer
        sessions_total: Sum of session sub-totals
        subscriptions_total: Sum of subscription sub-totals
        cancellations_total: Sum of cancellation sub-totals
    """

    period: str
    invoice_count: int = 0
    customer_count: int = 0
    total_to_bill: float = 0.0
    paid_total: float = 0.0
    pending_total: float = 0.0
    draft_total: float = 0.0
    approved_unpaid_total: float = 0.0
    collection_rate: float = 0.0
    pending_link_count: int = 0
    average_bill: float = 0.0
    sessions_total: float = 0.0
    subscriptions_total: float = 0.0
    cancellations_total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "period": self.period,
            "invoice_count": self.invoice_count,
            "customer_count": self.customer_count,
            "total_to_bill": self.total_to_bill,
            "paid_total": self.paid_total,
            "pending_total": self.pending_total,
            "draft_total": self.draft_total,
            "approved_unpaid_total": self.approved_unpaid_total,
            "collection_rate": self.collection_rate,
            "pending_link_count": self.pending_link_count,
            "average_bill": self.average_bill,
            "sessions_total": self.sessions_total,
            "subscriptions_total": self.subscriptions_total,
            "cancellations_total": self.cancellations_total,
        }


def invoices_to_frame(invoices: List[InvoiceRecord]) -> pd.DataFrame:
    """
    Tabulate invoices, one row per invoice.

    Returns:
        DataFrame with REPORT_COLUMNS
    """
    rows = []
    for invoice in invoices:
        adjustment = to_number(invoice.adjustment.amount) or 0.0
        rows.append({
            "invoice_id": invoice.id,
            "customer_id": invoice.customer_ids[0] if invoice.customer_ids else None,
            "period": invoice.period,
            "sessions_total": invoice.sessions_total,
            "cancellations_total": invoice.cancellations_total,
            "subscriptions_total": invoice.subscriptions_total,
            "total": invoice.total,
            "manual_adjustment": adjustment,
            "billed": invoice.total + adjustment,
            "approved": invoice.approved,
            "paid": invoice.paid,
            "link_sent": invoice.link_sent,
        })
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def build_invoice_report(invoices: List[InvoiceRecord], period: str) -> InvoiceReport:
    """
    Compute the KPIs of a period's invoices.

    Args:
        invoices: Invoices of the period
        period: Billing period (YYYY-MM)

    Returns:
        InvoiceReport (all zeros when there are no invoices)
    """
    df = invoices_to_frame(invoices)
    if df.empty:
        return InvoiceReport(period=period)

    paid = df["paid"].astype(bool)
    approved = df["approved"].astype(bool)
    link_sent = df["link_sent"].astype(bool)

    total_to_bill = float(df["billed"].sum())
    paid_total = float(df.loc[paid, "billed"].sum())
    customer_count = int(df["customer_id"].dropna().nunique())

    return InvoiceReport(
        period=period,
        invoice_count=len(df),
        customer_count=customer_count,
        total_to_bill=total_to_bill,
        paid_total=paid_total,
        pending_total=float(df.loc[~paid, "billed"].sum()),
        draft_total=float(df.loc[~paid & ~approved, "billed"].sum()),
        approved_unpaid_total=float(df.loc[~paid & approved, "billed"].sum()),
        collection_rate=round(paid_total / total_to_bill * 100, 2) if total_to_bill else 0.0,
        pending_link_count=int((approved & ~paid & ~link_sent).sum()),
        average_bill=round(total_to_bill / customer_count, 2) if customer_count else 0.0,
        sessions_total=float(df["sessions_total"].sum()),
        subscriptions_total=float(df["subscriptions_total"].sum()),
        cancellations_total=float(df["cancellations_total"].sum()),
    )
