"""Base Model Module."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from sqlalchemy.orm import DeclarativeBase

from anitilky.exceptions import CatalogError

__all__ = ["Base", "generic_serialize"]


def generic_serialize(obj: Any) -> Any:
    """Convert a value that ``json`` cannot encode into a serializable form.

    Args:
        obj: The object to convert.

    Returns:
        A JSON-serializable representation of the object.
    """
    if obj is None:
        return None
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class Base(DeclarativeBase):
    """Base class for all database models."""

    def model_dump(
        self,
        *,
        mode: Literal["json", "python"] | str = "python",
        exclude: set[str] | None = None,
        exclude_none: bool = False,
    ) -> dict[str, Any]:
        """Dump the mapped column values to a dictionary.

        Imitates the behavior of Pydantic's model_dump method.
        """
        result: dict[str, Any] = {}
        for column in self.__table__.columns:
            key = column.key
            if exclude and key in exclude:
                continue
            value = getattr(self, key)
            if exclude_none and value is None:
                continue
            result[key] = value

        if mode == "python":
            return result
        if mode == "json":
            return json.loads(json.dumps(result, default=generic_serialize))
        raise CatalogError(f"Unsupported dump mode: {mode}")
