from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ResourceInstance(BaseModel):
    """
    A concrete resource the actor is acting on.

    Only used for attribute-based conditions; never persisted.
    Examples:
      { "type": "billing", "attributes": {"patientId": "pt-001"} }
      { "type": "prescription", "attributes": {"department": "Cardiology"} }
    """
    type: Optional[str] = None
    attributes: Dict[str, Any] = {}

    @classmethod
    def from_flat(cls, data: Dict[str, Any]) -> "ResourceInstance":
        """Split the flat shape {"type": ..., **attrs} used by presentation code."""
        attrs = dict(data)
        rtype = attrs.pop("type", None)
        return cls(type=rtype, attributes=attrs)

    @classmethod
    def coerce(cls, value: "ResourceInstance | Dict[str, Any] | None") -> Optional["ResourceInstance"]:
        if value is None or isinstance(value, ResourceInstance):
            return value
        # nested shape {"type": ..., "attributes": {...}}
        if set(value) <= {"type", "attributes"} and isinstance(value.get("attributes"), dict):
            return cls.model_validate(value)
        return cls.from_flat(value)

    def with_default_type(self, resource_type: str) -> "ResourceInstance":
        if self.type:
            return self
        return self.model_copy(update={"type": resource_type})
