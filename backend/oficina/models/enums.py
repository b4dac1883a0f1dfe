from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    APPROVED = "Approved"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    AWAITING_PARTS = "Awaiting Parts"
    SERVICE_STOPPED = "Service Stopped"
    UNDER_SUPERVISION = "Under Supervision"
    SERVICES_FINALIZED = "Services Finalized"
    SERVICE_REOPENED = "Service Reopened"
    FINALIZED = "Finalized"


# Stored status strings. No further item/request/checklist mutation
CLOSED_ORDER_STATUSES = frozenset({
    OrderStatus.FINALIZED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REJECTED.value,
})

# Item lines are frozen once the work is done
ITEM_LOCKED_ORDER_STATUSES = CLOSED_ORDER_STATUSES | {OrderStatus.SERVICES_FINALIZED.value}

# Statuses a new part request does not override
PART_REQUEST_KEEPS_STATUS = ITEM_LOCKED_ORDER_STATUSES | {OrderStatus.AWAITING_PARTS.value}


class RequestStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    FINISHED = "Finished"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"

    @classmethod
    def coerce(cls, value: str | None) -> "RequestStatus":
        """Legacy rows may carry an empty status; those are pending."""
        if not value:
            return cls.PENDING
        return cls(value)


# A part request in one of these statuses keeps the order waiting
OUTSTANDING_REQUEST_STATUSES = frozenset({RequestStatus.PENDING.value, RequestStatus.IN_PROGRESS.value})


class RequestType(str, Enum):
    PART = "part"
    APPROVAL = "approval"
    PAYMENT = "payment"
    INFORMATION = "information"
    OTHER = "other"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class ChecklistStatus(str, Enum):
    PENDING = "Pending"
    DONE = "Done"


class CatalogKind(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"


class CashSessionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MovementType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


class PaymentStatus(str, Enum):
    GENERATED = "GENERATED"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    CASH = "cash"
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_SLIP = "bank_slip"
    TRANSFER = "transfer"


class NotificationPriority(str, Enum):
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"

    @classmethod
    def from_request_priority(cls, priority: str | None) -> "NotificationPriority":
        if priority == Priority.URGENT.value:
            return cls.URGENT
        if priority == Priority.HIGH.value:
            return cls.HIGH
        return cls.NORMAL
