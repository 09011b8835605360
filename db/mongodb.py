# centralizes MongoDB utilities
from bson import ObjectId
from typing import Annotated
from pydantic import Field
from typing import Iterable, List

PyObjectId = Annotated[str, Field(default_factory=lambda: str(ObjectId()))]

def convert_to_object_ids(id_values: Iterable[str]) -> List[ObjectId]:
    """Convert string IDs to ObjectIds, skipping values that are not valid ids"""
    return [ObjectId(value) for value in id_values if ObjectId.is_valid(value)]
