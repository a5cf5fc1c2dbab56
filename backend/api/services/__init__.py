"""Services layer - Business logic

Services are constructed from repositories and external clients and handed
to routers through dependency injection.
"""

from .auth_service import AuthService
from .chat_service import ChatService, SendResult
from .errors import Forbidden, NotFound, ServiceError, UpstreamError, ValidationFailed
from .lifecycle_service import LifecycleReconciler
from .livepeer_api import LivepeerAPIClient
from .moderation_service import ModerationResult, ModerationService
from .stream_service import StreamService
from .webhook_envelope import EnvelopeError, LifecycleEvent, decode_envelope

__all__ = [
    "AuthService",
    "ChatService",
    "EnvelopeError",
    "Forbidden",
    "LifecycleEvent",
    "LifecycleReconciler",
    "LivepeerAPIClient",
    "ModerationResult",
    "ModerationService",
    "NotFound",
    "SendResult",
    "ServiceError",
    "StreamService",
    "UpstreamError",
    "ValidationFailed",
    "decode_envelope",
]
