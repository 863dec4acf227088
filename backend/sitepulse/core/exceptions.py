"""
Custom Exceptions for SitePulse
===============================

The notification layer raises these internally and absorbs them at its
boundaries: scope lookups fail closed, counters degrade to zero, channel
failures become a status flag. Only the API layer turns them into responses.

Usage:
    from sitepulse.core.exceptions import CounterQueryError

    try:
        count = await self._count(...)
    except CounterQueryError as e:
        logger.log_error_with_context(e, context="counters")
        count = 0
"""

from typing import Optional, Any, Dict


class SitePulseError(Exception):
    """Base exception for all SitePulse errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication Errors
# ============================================

class AuthenticationError(SitePulseError):
    """User authentication failed"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidTokenError(AuthenticationError):
    """Bearer token is invalid or expired"""

    def __init__(self):
        super().__init__("Could not validate credentials")
        self.code = "INVALID_TOKEN"


# ============================================
# Notification Errors
# ============================================

class ScopeResolutionError(SitePulseError):
    """Project membership lookup failed"""

    def __init__(self, user_id: str, reason: str):
        super().__init__(
            f"Could not resolve project scope for user {user_id}: {reason}",
            code="SCOPE_RESOLUTION_FAILED",
            details={"user_id": user_id}
        )


class CounterQueryError(SitePulseError):
    """A single unread counter query failed"""

    def __init__(self, counter: str, reason: str):
        super().__init__(
            f"Counter '{counter}' failed: {reason}",
            code="COUNTER_QUERY_FAILED",
            details={"counter": counter}
        )


class InvalidNotificationTypeError(SitePulseError):
    """Unknown notification type passed to a mutation"""

    def __init__(self, notification_type: Any):
        super().__init__(
            f"Unknown notification type: {notification_type!r}",
            code="INVALID_NOTIFICATION_TYPE",
            details={"type": str(notification_type)}
        )


# ============================================
# Realtime Errors
# ============================================

class RealtimeError(SitePulseError):
    """Realtime transport failure"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="REALTIME_ERROR", details=details)


class ChannelSubscribeError(RealtimeError):
    """Subscribing a realtime channel failed or timed out"""

    def __init__(self, channel: str, reason: str):
        super().__init__(
            f"Channel '{channel}' could not subscribe: {reason}",
            details={"channel": channel}
        )
        self.code = "CHANNEL_SUBSCRIBE_FAILED"
