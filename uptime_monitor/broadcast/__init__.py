"""状态广播模块"""

from .base import BaseBroadcaster, CompositeBroadcaster, STATUS_UPDATE_TOPIC
from .hub import StatusHub, StatusMessage, Subscription
from .webhook import WebhookBroadcaster

__all__ = ['BaseBroadcaster', 'CompositeBroadcaster', 'STATUS_UPDATE_TOPIC',
           'StatusHub', 'StatusMessage', 'Subscription', 'WebhookBroadcaster']
