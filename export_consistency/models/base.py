"""Shared pydantic base for engine models.

Field names are snake_case in Python and camelCase on the wire, so JSON
configuration files and JSON reports keep the established key names
(``filePath``, ``exportName``, ``autoFixable`` ...).
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Mutable model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FrozenCamelModel(CamelModel):
    """Immutable model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
