"""
Table and field names of the Airtable base.

Field names are part of the data contract with the operators' base and
must round-trip unchanged. The invoice table uses Hebrew field names.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TableNames:
    students: str = "Students"
    lessons: str = "lessons"
    cancellations: str = "cancellations"
    subscriptions: str = "Subscriptions"
    monthly_bills: str = "MonthlyBills"


@dataclass(frozen=True)
class StudentFields:
    full_name: str = "full_name"
    is_active: str = "is_active"


@dataclass(frozen=True)
class LessonFields:
    students: str = "full_name"
    status: str = "status"
    lesson_type: str = "lesson_type"
    start_datetime: str = "start_datetime"
    billing_month: str = "billing_month"
    line_amount: str = "line_amount"


@dataclass(frozen=True)
class CancellationFields:
    lesson: str = "lesson"
    student: str = "student"
    billing_month: str = "billing_month"
    is_lt_24h: str = "is_lt_24h"
    is_charged: str = "is_charged"
    charge: str = "charge"


@dataclass(frozen=True)
class SubscriptionFields:
    student: str = "student_id"
    start_date: str = "subscription_start_date"
    end_date: str = "subscription_end_date"
    monthly_amount: str = "monthly_amount"
    subscription_type: str = "subscription_type"
    paused: str = "pause_subscription"


@dataclass(frozen=True)
class InvoiceFields:
    period: str = "חודש חיוב"
    paid: str = "שולם"
    approved: str = "מאושר לחיוב"
    student: str = "תלמיד"
    link_sent: str = "נשלח קישור"
    sessions_total: str = "lessons_amount"
    sessions_count: str = "lessons_count"
    cancellations_total: str = "cancellations_amount"
    subscriptions_total: str = "subscriptions_amount"
    total: str = "total_amount"
    adjustment_amount: str = "manual_adjustment_amount"
    adjustment_reason: str = "manual_adjustment_reason"
    adjustment_date: str = "manual_adjustment_date"


@dataclass(frozen=True)
class FieldMap:
    """
    Complete table/field mapping.

    Examples:
        >>> field_map = FieldMap(tables=TableNames(monthly_bills="Charges"))
        >>> field_map.invoices.paid
        'שולם'
    """

    tables: TableNames = field(default_factory=TableNames)
    students: StudentFields = field(default_factory=StudentFields)
    lessons: LessonFields = field(default_factory=LessonFields)
    cancellations: CancellationFields = field(default_factory=CancellationFields)
    subscriptions: SubscriptionFields = field(default_factory=SubscriptionFields)
    invoices: InvoiceFields = field(default_factory=InvoiceFields)
