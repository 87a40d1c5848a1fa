"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from app.models.customer_requests import CUSTOMER_REQUESTS_TABLE, CustomerRequestRow

__all__ = [
    "CUSTOMER_REQUESTS_TABLE",
    "CustomerRequestRow",
]
