# ===== app/utils/ids.py =====
import uuid
from typing import Optional, Union


def coerce_uuid(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Accept UUID objects or their string form; anything else returns None"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
