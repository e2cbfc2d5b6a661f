from typing import Union
from uuid import UUID

from booking_engine.core.exceptions import InvalidFormatError


def as_uuid(value: Union[str, UUID], field: str = "id") -> UUID:
    """Coerce an opaque identifier into a UUID"""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidFormatError(f"Invalid {field}: {value!r}")
