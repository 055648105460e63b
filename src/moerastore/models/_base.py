"""Base model for moerastore records.

Stored records and wire messages use camelCase keys (``defaultClient``,
``nodeName``); models expose them as snake_case fields through
``alias_generator=to_camel``.  Dump with ``by_alias=True`` to get the
storage/wire shape back.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class MoeraBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
