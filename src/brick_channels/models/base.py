"""Shared base for models that cross the process boundary."""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


class WireModel(BaseModel):
    """Model serialized with camelCase keys for the UI layer."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def to_wire(self) -> Dict[str, Any]:
        """Dump to the camelCase dict the UI expects."""
        return self.model_dump(by_alias=True, mode="json")
