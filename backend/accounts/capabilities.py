"""Caller identity passed explicitly into the booking and payment services."""

from __future__ import annotations

from dataclasses import dataclass, field

BOOKING_CREATE = "booking:create"
BOOKING_CANCEL = "booking:cancel"
BOOKING_MODIFY = "booking:modify"
BOOKING_MANAGE = "booking:manage"
PAYMENT_CREATE = "payment:create"
FARM_ADMIN = "farm:admin"

TOURIST_CAPABILITIES = frozenset({BOOKING_CREATE, BOOKING_CANCEL, BOOKING_MODIFY, PAYMENT_CREATE})
FARMER_CAPABILITIES = TOURIST_CAPABILITIES | {BOOKING_MANAGE}
ADMIN_CAPABILITIES = FARMER_CAPABILITIES | {FARM_ADMIN}


@dataclass(frozen=True)
class Caller:
    user_id: int
    capabilities: frozenset = field(default_factory=frozenset)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def is_admin(self) -> bool:
        return FARM_ADMIN in self.capabilities


def capabilities_for_role(role: str) -> frozenset:
    from accounts.models import User

    if role == User.ADMIN:
        return ADMIN_CAPABILITIES
    if role == User.FARMER:
        return FARMER_CAPABILITIES
    return TOURIST_CAPABILITIES


def caller_for(user) -> Caller:
    """Build the caller identity for an authenticated user."""
    if user.is_superuser:
        return Caller(user_id=user.pk, capabilities=ADMIN_CAPABILITIES)
    return Caller(user_id=user.pk, capabilities=capabilities_for_role(user.role))
