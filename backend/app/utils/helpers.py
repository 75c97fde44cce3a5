from typing import Iterable, List, Optional
from bson import ObjectId
from bson.errors import InvalidId


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a string id. Returns None if it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_object_ids(values: Iterable[str]) -> List[ObjectId]:
    """Parse a list of string ids, raising ValueError on the first bad one."""
    object_ids = []
    for value in values:
        object_id = to_object_id(value)
        if object_id is None:
            raise ValueError(f"Invalid ID: {value}")
        object_ids.append(object_id)
    return object_ids
