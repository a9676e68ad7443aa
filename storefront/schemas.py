from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """Request body accepting both camelCase (web/mobile clients) and snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def reject_null(value):
    """Partial updates may omit a required column but never set it to null."""
    if value is None:
        raise ValueError("cannot be null")
    return value


def envelope(data: Any = None, message: str | None = None, **extra) -> dict:
    body = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body
