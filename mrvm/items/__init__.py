"""Items: the named variables assembled into model matrices."""

from .base import IOType, ValueType, ItemKind, Item, BaseItem
from .values import RealItem, RealArrayItem, CategoricalItem, CategoryMap
from .raster import RasterCapable, RealRasterItem, CategoricalRasterItem

__all__ = [
    "IOType",
    "ValueType",
    "ItemKind",
    "Item",
    "BaseItem",
    "RealItem",
    "RealArrayItem",
    "CategoricalItem",
    "CategoryMap",
    "RasterCapable",
    "RealRasterItem",
    "CategoricalRasterItem",
]
