"""
ORM models.

Every model module is imported here so that string-based relationship
targets resolve and Alembic sees the complete metadata.
"""

from zimmr.models.user import USER_ROLES, Craftsman, User
from zimmr.models.customer import Customer, CustomerSpace
from zimmr.models.material import Material
from zimmr.models.appointment import (
    APPOINTMENT_STATUSES,
    APPROVAL_STATUSES,
    Appointment,
    AppointmentMaterial,
)
from zimmr.models.invoice import INVOICE_STATUSES, INVOICE_TYPES, Invoice, InvoiceItem
from zimmr.models.time_entry import Break, TimeEntry
from zimmr.models.finance import GOAL_PERIODS, FinanceGoal

__all__ = [
    "APPOINTMENT_STATUSES",
    "APPROVAL_STATUSES",
    "GOAL_PERIODS",
    "INVOICE_STATUSES",
    "INVOICE_TYPES",
    "USER_ROLES",
    "Appointment",
    "AppointmentMaterial",
    "Break",
    "Craftsman",
    "Customer",
    "CustomerSpace",
    "FinanceGoal",
    "Invoice",
    "InvoiceItem",
    "Material",
    "TimeEntry",
    "User",
]
