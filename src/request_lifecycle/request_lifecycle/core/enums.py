from __future__ import annotations

from enum import Enum


class GuardianLinkStatus(str, Enum):
    """Trạng thái yêu cầu liên kết người giám hộ."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self != GuardianLinkStatus.PENDING


class PaymentStatus(str, Enum):
    """Trạng thái yêu cầu thanh toán."""

    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in {PaymentStatus.PAID, PaymentStatus.REJECTED}


class RelationshipType(str, Enum):
    PARENT = "parent"
    FATHER = "father"
    MOTHER = "mother"
    GUARDIAN = "guardian"
    SIBLING = "sibling"
    RELATIVE = "relative"
    OTHER = "other"


class PaymentMethod(str, Enum):
    MPESA = "mpesa"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHEQUE = "cheque"
    CARD = "card"


class NotificationEventType(str, Enum):
    """Sự kiện được gửi tới bộ phát thông báo khi trạng thái thay đổi."""

    GUARDIAN_LINK_CREATED = "guardian_link.created"
    GUARDIAN_LINK_APPROVAL_RECORDED = "guardian_link.approval_recorded"
    GUARDIAN_LINK_APPROVED = "guardian_link.approved"
    GUARDIAN_LINK_REJECTED = "guardian_link.rejected"
    GUARDIAN_LINK_EXPIRED = "guardian_link.expired"
    PAYMENT_REQUEST_CREATED = "payment_request.created"
    PAYMENT_REQUEST_APPROVED = "payment_request.approved"
    PAYMENT_REQUEST_REJECTED = "payment_request.rejected"
    PAYMENT_RECORDED = "payment_request.payment_recorded"
    PAYMENT_REQUEST_PAID = "payment_request.paid"
