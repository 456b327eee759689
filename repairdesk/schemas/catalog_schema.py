"""Catalog item model shared by standard services and bundled offers."""

from typing import Optional

from pydantic import BaseModel, Field


class CatalogItem(BaseModel):
    """A statically configured service or bundle."""

    id: str
    name: str
    price: int = Field(ge=0)
    description: str
    duration: str
    points: Optional[int] = None

    @property
    def is_bundle(self) -> bool:
        return self.points is not None
