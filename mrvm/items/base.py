"""Item protocol and shared item behaviour."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import jax.numpy as jnp
from jaxtyping import Array, Float


class IOType(Enum):
    """Role of an item in the model."""
    INPUT = "input"
    OUTPUT = "output"


class ValueType(Enum):
    """Kind of values an item holds."""
    REAL = "real"
    CATEGORICAL = "categorical"


class ItemKind(Enum):
    """Tag of the concrete item variant."""
    REAL = "real"
    CATEGORICAL = "categorical"
    REAL_ARRAY = "real_array"
    REAL_RASTER = "real_raster"
    CATEGORICAL_RASTER = "categorical_raster"


@runtime_checkable
class Item(Protocol):
    """
    Contract between the matrix assembler and a variable.

    ``index`` is the logical value index. Value methods return a block
    of shape (num_rows_per_value(), column_count()).
    """

    name: str
    io_type: IOType

    @property
    def kind(self) -> ItemKind:
        ...

    @property
    def value_type(self) -> ValueType:
        ...

    def training_values(self, index: int, strict: bool = False) -> Float[Array, "rows cols"]:
        ...

    def forecast_values(self, index: int, strict: bool = False) -> Float[Array, "rows cols"]:
        ...

    def set_forecast_values(
        self,
        index: int,
        values: Float[Array, "rows cols"],
        uncertainty: Float[Array, "rows cols"]
    ) -> None:
        ...

    def column_count(self) -> int:
        ...

    def num_training_values(self) -> int:
        ...

    def num_forecast_values(self) -> int:
        ...

    def num_rows_per_value(self) -> int:
        ...


class BaseItem(ABC):
    """
    Behaviour shared by the concrete item variants.

    Parameters:
        name: Unique item name
        io_type: Input or Output
        properties: Free-form metadata carried alongside the item
    """

    kind: ItemKind
    value_type: ValueType

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        properties: Optional[Dict[str, Any]] = None
    ):
        if not name:
            raise ValueError("Item name must not be empty")
        self.name = name
        self.io_type = IOType(io_type)
        self.properties: Dict[str, Any] = dict(properties or {})

    def num_rows_per_value(self) -> int:
        """Physical rows contributed by one logical value."""
        return 1

    @abstractmethod
    def clear_forecasts(self) -> None:
        """Drop stored forecast predictions and uncertainties."""

    @staticmethod
    def _as_block(values, columns: int) -> Float[Array, "1 cols"]:
        return jnp.asarray(values, dtype=jnp.float64).reshape(1, columns)

    @staticmethod
    def _expand_to(values: List, index: int, fill: Any) -> None:
        """Grow a list in place so that ``index`` is addressable."""
        if index >= len(values):
            values.extend([fill] * (index + 1 - len(values)))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, io_type={self.io_type.value}, "
            f"columns={self.column_count()}, training={self.num_training_values()}, "
            f"forecast={self.num_forecast_values()})"
        )
