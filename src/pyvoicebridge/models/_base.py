"""Base model for relay wire payloads.

Every wire model inherits from :class:`BridgeBaseModel` which provides
``alias_generator=to_camel`` so the camelCase keys used on the MQTT relay
(``messageId``, ``endpointId``) map to snake_case fields, and
:meth:`BridgeBaseModel.to_wire` which serialises back to camelCase with
unset values left out.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BridgeBaseModel(BaseModel):
    """Base for wire models exchanged with the cloud relay."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting ``None`` values."""
        return self.model_dump(by_alias=True, exclude_none=True)
