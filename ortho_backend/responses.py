"""
Orthodontic Practice Backend - Success Response Envelope

    {"success": true, "message": "...", "data": ...}
"""
from typing import Any, Dict, Iterable, Optional, Type

from pydantic import BaseModel


def ok(data: Any = None, message: str = "OK", **extra) -> Dict[str, Any]:
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body


def dump(schema: Type[BaseModel], obj: Any) -> Optional[Dict[str, Any]]:
    """ORM object -> JSON-ready dict through a response schema"""
    if obj is None:
        return None
    return schema.model_validate(obj).model_dump(mode="json")


def dump_all(schema: Type[BaseModel], objs: Iterable[Any]):
    return [dump(schema, obj) for obj in objs]
