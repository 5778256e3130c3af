"""Response schemas for dashboards and admin reports."""

from datetime import date
from decimal import Decimal

from middlesman.schemas.base import CamelModel
from middlesman.schemas.user import UserSummary


class EarningsResponse(CamelModel):
    total: Decimal
    pending: Decimal
    this_month: Decimal
    last_month: Decimal
    transaction_count: int


class StatusBucket(CamelModel):
    status: str
    count: int
    total_amount: Decimal


class MonthBucket(CamelModel):
    month: str  # YYYY-MM
    count: int
    total_amount: Decimal


class TransactionReportSummary(CamelModel):
    total_transactions: int
    total_amount: Decimal


class TransactionReport(CamelModel):
    summary: TransactionReportSummary
    by_status: list[StatusBucket]
    by_month: list[MonthBucket]


class MonthCount(CamelModel):
    month: str
    count: int


class ActiveUser(CamelModel):
    user_id: int
    transaction_count: int
    user: UserSummary | None = None


class UserReportSummary(CamelModel):
    total_users: int
    new_users: int


class UserReport(CamelModel):
    summary: UserReportSummary
    monthly_signups: list[MonthCount]
    most_active_buyers: list[ActiveUser]
    most_active_sellers: list[ActiveUser]


class DisputeReportSummary(CamelModel):
    total_disputes: int
    average_resolution_time: float  # days


class CountBucket(CamelModel):
    key: str
    count: int


class DisputeReport(CamelModel):
    summary: DisputeReportSummary
    by_status: list[CountBucket]
    by_resolution_type: list[CountBucket]
    by_month: list[MonthCount]


class DateRange(CamelModel):
    start_date: date | None = None
    end_date: date | None = None
