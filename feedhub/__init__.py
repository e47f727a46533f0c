"""Topic feed hub: publish posts, fan out notifications to subscribers, push them to live sessions."""

from feedhub.config import Settings
from feedhub.fanout import FanoutEngine
from feedhub.hub import FeedHub
from feedhub.models import Notification, Post, PublishResult
from feedhub.registry import Registry
from feedhub.transport import Transport

__all__ = [
    "Settings",
    "FanoutEngine",
    "FeedHub",
    "Notification",
    "Post",
    "PublishResult",
    "Registry",
    "Transport",
]
