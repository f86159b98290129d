from datetime import date, datetime
from enum import Enum
from typing import Any

import orjson
from bson import ObjectId
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, field_serializer
from pydantic_core import core_schema


class PyObjectId(ObjectId):
    """ObjectId field type: accepts an ObjectId or its 24-char hex string."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        return core_schema.no_info_after_validator_function(
            cls.validate,
            core_schema.union_schema([
                core_schema.is_instance_schema(ObjectId),
                core_schema.str_schema(),
            ]),
        )

    @classmethod
    def validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")

    @classmethod
    def __get_pydantic_json_schema__(cls, schema, handler):
        return {"type": "string", "pattern": "^[0-9a-f]{24}$"}


class MongoModel(BaseModel):
    model_config = {
        "populate_by_name": True,
        "use_enum_values": True,
        "validate_default": True,
    }

    @field_serializer("*", when_used="json", check_fields=False)
    def serialize_objectid(self, value):
        return str(value) if isinstance(value, ObjectId) else value

    def to_mongo(self) -> dict:
        """Document form: aliased keys, ObjectIds and datetimes left native."""
        return self.model_dump(by_alias=True)


def normalize_bson(obj):
    """Recursively convert ObjectId, datetime, date and enums to JSON-safe types."""
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(by_alias=True)
    if isinstance(obj, dict):
        return {str(k): normalize_bson(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_bson(i) for i in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


class MongoORJSONResponse(ORJSONResponse):
    """Default response class: serializes ObjectId, datetime and pydantic models."""
    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return orjson.dumps(normalize_bson(content))
