from __future__ import annotations


class TenantGateError(Exception):
    """Base error for tenantgate."""

    code = "TENANTGATE_ERROR"


class AuthenticationRequired(TenantGateError):
    """No validated principal accompanied the request."""

    code = "AUTHENTICATION_REQUIRED"


class AuthorizationDenied(TenantGateError):
    """A decision denied the request; carries the deny reason."""

    code = "AUTHZ_DENIED"

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class CompanyMismatch(AuthorizationDenied):
    """Principal targeted another company's resources."""

    code = "COMPANY_MISMATCH"


class PageDisabled(AuthorizationDenied):
    """Page is disabled for the principal's company."""

    code = "PAGE_DISABLED"


class InsufficientRole(AuthorizationDenied):
    """Role, page matrix and overrides all failed to grant access."""

    code = "INSUFFICIENT_ROLE"


class UnknownEndpoint(AuthorizationDenied):
    """No endpoint rule matched; authorization fails closed."""

    code = "UNKNOWN_ENDPOINT"


class OverrideStoreUnavailable(TenantGateError):
    """Override storage timed out or failed; authorization fails closed."""

    code = "OVERRIDE_STORE_UNAVAILABLE"


class RoleNotFound(TenantGateError):
    """Role name does not resolve for the company."""

    code = "ROLE_NOT_FOUND"


class RoleAlreadyExists(TenantGateError):
    """An active custom role with the same name exists in the company."""

    code = "ROLE_ALREADY_EXISTS"


class ReservedRoleName(TenantGateError):
    """Custom role name collides with a built-in role."""

    code = "ROLE_NAME_RESERVED"


class InvalidRoleName(TenantGateError):
    """Custom role name fails normalization rules."""

    code = "ROLE_NAME_INVALID"


class InvalidPermission(TenantGateError):
    """Permission value is outside the accepted vocabulary."""

    code = "PERMISSION_INVALID"


class RoleInUse(TenantGateError):
    """Custom role is still assigned to active users."""

    code = "ROLE_IN_USE"


class RoleNotConfigurable(TenantGateError):
    """Role page access cannot be configured for admin tiers."""

    code = "ROLE_NOT_CONFIGURABLE"


class UnknownPage(TenantGateError):
    """Page key is not in the page catalog."""

    code = "PAGE_UNKNOWN"


class SelfGrantForbidden(TenantGateError):
    """A user may not grant overrides to themselves."""

    code = "SELF_GRANT_FORBIDDEN"


class GrantNotPermitted(TenantGateError):
    """Granter lacks manage_permissions on the target company."""

    code = "GRANT_NOT_PERMITTED"


class InvalidExpiry(TenantGateError):
    """Override expiry is in the past or does not extend the current one."""

    code = "EXPIRY_INVALID"


class DuplicateOverride(TenantGateError):
    """Target user already holds an active identical override."""

    code = "OVERRIDE_DUPLICATE"


class OverrideNotFound(TenantGateError):
    """Override id does not exist for the user."""

    code = "OVERRIDE_NOT_FOUND"


class UserNotFound(TenantGateError):
    """Target user does not exist within the company boundary."""

    code = "USER_NOT_FOUND"


class InvalidRestriction(TenantGateError):
    """Visibility restriction type or value is invalid."""

    code = "RESTRICTION_INVALID"


class RestrictionNotFound(TenantGateError):
    """Visibility restriction id does not exist for the role."""

    code = "RESTRICTION_NOT_FOUND"
