import uuid
from typing import Optional, Union

from approval_engine.errors import ValidationError

IdLike = Union[str, uuid.UUID]


def to_uuid(value: Optional[IdLike], field_name: str, required: bool = True) -> Optional[uuid.UUID]:
    if value is None:
        if required:
            raise ValidationError(f"{field_name} is required", field=field_name)
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a valid UUID", field=field_name)
