"""Email template identifiers used by settlement."""

from enum import Enum


class EmailTemplate(Enum):
    CASE_CREATED = "CASE_CREATED"
    CASE_CREATED_PAYMENT_SUCCESS = "CASE_CREATED_PAYMENT_SUCCESS"
    CASE_CLOSE_OFFER_PAYMENT_SUCCESS = "CASE_CLOSE_OFFER_PAYMENT_SUCCESS"
    CASE_ORDER_FEE_PAYMENT_SUCCESS_CUSTOMER = "CASE_ORDER_FEE_PAYMENT_SUCCESS_CUSTOMER"
    CASE_REFUND_SUCCESS_CUSTOMER = "CASE_REFUND_SUCCESS_CUSTOMER"
    PRODUCT_PURCHASE_SUCCESS_CUSTOMER = "PRODUCT_PURCHASE_SUCCESS_CUSTOMER"
    SERVICE_PURCHASED_PRACTITIONER = "SERVICE_PURCHASED_PRACTITIONER"
    SERVICE_PURCHASED_CUSTOMER = "SERVICE_PURCHASED_CUSTOMER"


class Topic(Enum):
    PAYMENT_CONFIRMED = "paymentConfirmed"
    CASE_STATUS = "caseStatus"
    ORDERS = "orders"
    NOTIFICATIONS = "notifications"
