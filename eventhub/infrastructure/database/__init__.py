# eventhub/infrastructure/database/__init__.py

from .session import async_engine, get_db
from .base import Base
from .repositories import CredentialStore, OtpStore
