"""
craftlink.api.schemas — Shared request/response plumbing
=========================================================

The game-server plugin and the dashboard speak camelCase JSON; models
accept either camelCase or the snake_case field names.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ok(data: Any) -> dict:
    """Wrap *data* in the ``{success, data}`` envelope."""
    return {"success": True, "data": data}
