# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base record model with common fields and wire-name aliasing.
"""

import uuid
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Columns managed by the remote store, never part of a local record.
METADATA_FIELDS = ("user_id", "created_at", "updated_at")


def generate_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


class RecordBase(BaseModel):
    """Base for all synced records.

    Python attributes are snake_case; the remote columns (and the JSON
    cache) use the camelCase names produced by the alias generator.
    """

    model_config = ConfigDict(
        # Accept both attribute names and wire names
        populate_by_name=True,
        alias_generator=to_camel,
        # Store enum values so copies and payloads are plain data
        use_enum_values=True,
        validate_assignment=True,
        # Remote rows may carry columns this client does not know yet
        extra="ignore",
    )

    id: str = Field(default_factory=generate_id, description="Unique identifier")

    def to_row(self) -> Dict[str, Any]:
        """Serialize the record using remote column names."""
        return self.model_dump(by_alias=True, mode="json")
