"""
Provider adapters.

Importing this package registers every built-in adapter in ADAPTERS.
"""

from .base import (
    ADAPTERS,
    CAPABILITIES,
    ProviderAdapter,
    register_adapter,
)
from .dingtalk import DingTalkAdapter
from .feishu import FeishuAdapter

__all__ = [
    'ADAPTERS',
    'CAPABILITIES',
    'ProviderAdapter',
    'register_adapter',
    'DingTalkAdapter',
    'FeishuAdapter',
]
