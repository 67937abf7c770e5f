# FreeHand: Quota Module
#
# Remaining model quota read from the language server, published as
# QuotaSnapshots on the quota_updated channel.

from .models import (
    STATUS_CRITICAL,
    STATUS_OK,
    STATUS_UNKNOWN,
    STATUS_WARNING,
    ModelQuota,
    QuotaSnapshot,
    UserInfo,
    decode_user_status,
    format_duration,
    parse_reset_time,
    quota_status,
)
from .quota_service import QuotaService

__all__ = [
    "STATUS_OK",
    "STATUS_WARNING",
    "STATUS_CRITICAL",
    "STATUS_UNKNOWN",
    "ModelQuota",
    "QuotaSnapshot",
    "UserInfo",
    "decode_user_status",
    "format_duration",
    "parse_reset_time",
    "quota_status",
    "QuotaService",
]
