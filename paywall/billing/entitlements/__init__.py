from __future__ import annotations

from .service import (
    REASON_NONE,
    REASON_PLUS,
    REASON_PURCHASED,
    check_media_unlock,
    check_moment_unlock,
    check_unlock_fail_closed,
    get_entitlements,
    get_entitlements_bounded,
)


class EntitlementService:
    get_entitlements = staticmethod(get_entitlements)
    get_entitlements_bounded = staticmethod(get_entitlements_bounded)
    check_moment_unlock = staticmethod(check_moment_unlock)
    check_media_unlock = staticmethod(check_media_unlock)
    check_unlock_fail_closed = staticmethod(check_unlock_fail_closed)


__all__ = [
    "REASON_NONE",
    "REASON_PLUS",
    "REASON_PURCHASED",
    "EntitlementService",
]
