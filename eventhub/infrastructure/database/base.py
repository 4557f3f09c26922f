# eventhub/infrastructure/database/base.py
from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    """
    DeclarativeBase class for SQLAlchemy ORM models.
    All EventHub models inherit from this Base.
    """
    pass
