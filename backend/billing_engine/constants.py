"""
Shared constants for tiers, products and billing events.
"""

from enum import Enum


# Reserved catalog product id for the tier every user falls back to
FREE_TIER_PRODUCT_ID = "free"

# 1 GiB
FREE_PLAN_BYTES_SPACE = 1024 * 1024 * 1024

# Manual-capture card verification amount, in cents
VERIFICATION_CHARGE = 100

FIFTEEN_MINS_EXPIRATION_IN_SECONDS = 15 * 60
FOUR_HOURS_EXPIRATION_IN_SECONDS = 4 * 60 * 60


class BillingType(str, Enum):
    """How a tier is paid for."""
    SUBSCRIPTION = "subscription"
    LIFETIME = "lifetime"


class Service(str, Enum):
    """Services that carry a feature record inside a tier."""
    DRIVE = "drive"
    BACKUPS = "backups"
    ANTIVIRUS = "antivirus"
    MEET = "meet"
    MAIL = "mail"
    VPN = "vpn"
    CLEANER = "cleaner"
    DARK_MONITOR = "darkMonitor"
    CLI = "cli"
    RCLONE = "rclone"


class UserType(str, Enum):
    """Product `type` metadata values on the payments processor."""
    INDIVIDUAL = "individual"
    BUSINESS = "business"
    OBJECT_STORAGE = "object-storage"


class PlanType(str, Enum):
    """Price `planType` metadata values."""
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"


class SubscriptionKind(str, Enum):
    """Live subscription view of a customer."""
    FREE = "free"
    SUBSCRIPTION = "subscription"
    LIFETIME = "lifetime"


class WebhookEventType(str, Enum):
    """Payments-processor event types handled by the lifecycle engine."""
    INVOICE_PAID = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    DISPUTE_CLOSED = "charge.dispute.closed"
    CHARGE_REFUNDED = "charge.refunded"
    FUNDS_CAPTURED = "payment_intent.amount_capturable_updated"
