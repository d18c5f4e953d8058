"""
Shared pydantic bases.

Response schemas that are built from ORM rows inherit BaseResponseSchema so
`model_validate(row)` works; request bodies inherit the create/update bases.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """Read model populated from ORM attributes."""
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Request body; unknown keys from upstream payloads are dropped."""
    model_config = ConfigDict(extra="ignore")


class BaseUpdateSchema(BaseModel):
    """Partial update body; callers use `model_dump(exclude_unset=True)`."""
    model_config = ConfigDict(extra="ignore")
