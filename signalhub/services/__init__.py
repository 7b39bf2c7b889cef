"""Services package exports."""

from signalhub.services.auth_service import AuthService
from signalhub.services.logging_service import configure_logging, get_logger
from signalhub.services.redis_service import RedisService
from signalhub.services.signal_service import SignalService
from signalhub.services.token_service import TokenService
from signalhub.services.user_service import UserService

__all__ = [
    "AuthService",
    "RedisService",
    "SignalService",
    "TokenService",
    "UserService",
    "configure_logging",
    "get_logger",
]
