import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_id(value) -> bool:
    """Aceita apenas UUIDs na forma canônica (como gerados por ``new_id``)."""
    if not isinstance(value, str) or not value:
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False
