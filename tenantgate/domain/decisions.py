from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


REASON_ADMIN_FLOOR = "ADMIN_FLOOR"
REASON_ROLE = "ROLE"
REASON_OVERRIDE = "OVERRIDE"
REASON_AUTHENTICATED = "AUTHENTICATED"

REASON_AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
REASON_COMPANY_MISMATCH = "COMPANY_MISMATCH"
REASON_UNKNOWN_ENDPOINT = "UNKNOWN_ENDPOINT"
REASON_PAGE_DISABLED = "PAGE_DISABLED"
REASON_INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
REASON_OVERRIDE_STORE_UNAVAILABLE = "OVERRIDE_STORE_UNAVAILABLE"

DecisionReason = Literal[
    "ADMIN_FLOOR",
    "ROLE",
    "OVERRIDE",
    "AUTHENTICATED",
    "AUTHENTICATION_REQUIRED",
    "COMPANY_MISMATCH",
    "UNKNOWN_ENDPOINT",
    "PAGE_DISABLED",
    "INSUFFICIENT_ROLE",
    "OVERRIDE_STORE_UNAVAILABLE",
]

PhiAccessLevel = Literal["none", "limited", "full"]


@dataclass(frozen=True)
class Principal:
    # Validated caller handed over by the authentication collaborator; never persisted.
    user_id: str
    company_id: str
    role: str
    phi_access_level: PhiAccessLevel = "none"
    session_id: str | None = None
    is_mobile: bool = False


@dataclass(frozen=True)
class AccessRequest:
    path: str
    method: str
    # Company whose data the request touches, when the route or body names one.
    target_company_id: str | None = None
    resource_id: str | None = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    # Pattern of the endpoint rule that matched, or the engine step that decided.
    matched_rule: str | None = None
    page_key: str | None = None
    permission: str | None = None
    phi_classified: bool = False

    @property
    def denied(self) -> bool:
        return not self.allowed
