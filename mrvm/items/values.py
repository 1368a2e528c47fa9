"""Scalar, array and categorical items."""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float

from .base import BaseItem, IOType, ItemKind, ValueType
from ..errors import DomainError, ShapeError, UnresolvedCategoryError


class RealItem(BaseItem):
    """
    Real-valued scalar variable (one column).

    Parameters:
        name: Item name
        io_type: Input or Output
        training: Training values
        forecast: Forecast values (inputs) or stored predictions (outputs)
        properties: Free-form metadata
    """

    kind = ItemKind.REAL
    value_type = ValueType.REAL

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        training: Optional[Iterable[float]] = None,
        forecast: Optional[Iterable[float]] = None,
        properties: Optional[Dict[str, Any]] = None
    ):
        super().__init__(name, io_type, properties)
        training = [] if training is None else training
        forecast = [] if forecast is None else forecast
        self._training: List[float] = [float(v) for v in training]
        self._forecast: List[float] = [float(v) for v in forecast]
        self._uncertainty: List[float] = [float("nan")] * len(self._forecast)

    @property
    def training(self) -> List[float]:
        return list(self._training)

    @property
    def forecast(self) -> List[float]:
        return list(self._forecast)

    @property
    def uncertainty(self) -> List[float]:
        return list(self._uncertainty)

    def set_training(self, values: Iterable[float]) -> None:
        self._training = [float(v) for v in values]

    def set_forecast(self, values: Iterable[float]) -> None:
        self._forecast = [float(v) for v in values]
        self._uncertainty = [float("nan")] * len(self._forecast)

    def clear_forecasts(self) -> None:
        self._forecast = []
        self._uncertainty = []

    def column_count(self) -> int:
        return 1

    def num_training_values(self) -> int:
        return len(self._training)

    def num_forecast_values(self) -> int:
        return len(self._forecast)

    def training_values(self, index: int, strict: bool = False) -> Float[Array, "1 1"]:
        value = self._training[index]
        if strict and not np.isfinite(value):
            raise DomainError("Missing training value", self.name, index)
        return self._as_block(value, 1)

    def forecast_values(self, index: int, strict: bool = False) -> Float[Array, "1 1"]:
        value = self._forecast[index]
        if strict and not np.isfinite(value):
            raise DomainError("Missing forecast value", self.name, index)
        return self._as_block(value, 1)

    def set_forecast_values(self, index: int, values, uncertainty) -> None:
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        uncertainty = np.asarray(uncertainty, dtype=np.float64).reshape(-1)
        if values.size != 1 or uncertainty.size != 1:
            raise ShapeError(
                "Forecast width does not match the item",
                item=self.name,
                expected=1,
                actual=(values.size, uncertainty.size)
            )
        self._expand_to(self._forecast, index, float("nan"))
        self._expand_to(self._uncertainty, index, float("nan"))
        self._forecast[index] = float(values[0])
        self._uncertainty[index] = float(uncertainty[0])


class RealArrayItem(BaseItem):
    """
    Fixed-length real vector per value (N columns).

    Parameters:
        name: Item name
        io_type: Input or Output
        training: Training vectors, all of the same length
        forecast: Forecast vectors
        columns: Vector length; inferred from the values when omitted
        properties: Free-form metadata
    """

    kind = ItemKind.REAL_ARRAY
    value_type = ValueType.REAL

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        training: Optional[Iterable[Sequence[float]]] = None,
        forecast: Optional[Iterable[Sequence[float]]] = None,
        columns: Optional[int] = None,
        properties: Optional[Dict[str, Any]] = None
    ):
        super().__init__(name, io_type, properties)
        self._columns = columns
        training = [] if training is None else training
        forecast = [] if forecast is None else forecast
        self._training = [self._check_vector(v) for v in training]
        self._forecast = [self._check_vector(v) for v in forecast]
        self._uncertainty = [np.full(self.column_count(), np.nan) for _ in self._forecast]

    def _check_vector(self, values: Sequence[float]) -> np.ndarray:
        vector = np.asarray(values, dtype=np.float64).reshape(-1)
        if self._columns is None:
            self._columns = vector.shape[0]
        elif vector.shape[0] != self._columns:
            raise ShapeError(
                "Array values must share one length",
                item=self.name,
                expected=self._columns,
                actual=vector.shape[0]
            )
        return vector

    @property
    def training(self) -> List[np.ndarray]:
        return [v.copy() for v in self._training]

    @property
    def forecast(self) -> List[np.ndarray]:
        return [v.copy() for v in self._forecast]

    @property
    def uncertainty(self) -> List[np.ndarray]:
        return [v.copy() for v in self._uncertainty]

    def clear_forecasts(self) -> None:
        self._forecast = []
        self._uncertainty = []

    def column_count(self) -> int:
        if self._columns is None:
            raise ShapeError("Array item has no values to infer its width from", item=self.name)
        return self._columns

    def num_training_values(self) -> int:
        return len(self._training)

    def num_forecast_values(self) -> int:
        return len(self._forecast)

    def training_values(self, index: int, strict: bool = False) -> Float[Array, "1 cols"]:
        vector = self._training[index]
        if strict and not np.all(np.isfinite(vector)):
            raise DomainError("Missing training value", self.name, index)
        return self._as_block(vector, self.column_count())

    def forecast_values(self, index: int, strict: bool = False) -> Float[Array, "1 cols"]:
        vector = self._forecast[index]
        if strict and not np.all(np.isfinite(vector)):
            raise DomainError("Missing forecast value", self.name, index)
        return self._as_block(vector, self.column_count())

    def set_forecast_values(self, index: int, values, uncertainty) -> None:
        columns = self.column_count()
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        uncertainty = np.asarray(uncertainty, dtype=np.float64).reshape(-1)
        if values.size != columns or uncertainty.size != columns:
            raise ShapeError(
                "Forecast width does not match the item",
                item=self.name,
                expected=columns,
                actual=(values.size, uncertainty.size)
            )
        self._expand_to(self._forecast, index, None)
        self._expand_to(self._uncertainty, index, None)
        self._forecast[index] = values.copy()
        self._uncertainty[index] = uncertainty.copy()


class CategoryMap:
    """
    Bidirectional label / class-code / compact-index mapping.

    Labels map to integer class codes. Class codes observed in the
    training data map to a contiguous index space ordered by class
    code; that index is the numeric feature used by the model.

    Parameters:
        categories: Optional explicit label -> class code mapping
    """

    def __init__(self, categories: Optional[Dict[str, int]] = None):
        self._explicit = categories is not None
        self.class_by_category: Dict[str, int] = {}
        self.category_by_class: Dict[int, str] = {}
        for label, code in (categories or {}).items():
            self._add(str(label), int(code))
        self.index_by_class: Dict[int, int] = {}
        self.class_by_index: Dict[int, int] = {}

    def _add(self, label: str, code: int) -> None:
        if code in self.category_by_class and self.category_by_class[code] != label:
            raise ValueError(f"Class code {code} already used by {self.category_by_class[code]!r}")
        self.class_by_category[label] = code
        self.category_by_class[code] = label

    @property
    def explicit(self) -> bool:
        """Whether the label -> code mapping was supplied by the caller."""
        return self._explicit

    @property
    def n_classes(self) -> int:
        """Size of the compact index space."""
        return len(self.index_by_class)

    def fit_labels(self, labels: Iterable[Any]) -> None:
        """
        Build the index space from observed training labels.

        Without explicit categories, sorted unseen labels get the next
        free class codes. Labels unknown to an explicit mapping are
        ignored here and reported when they are looked up.
        """
        observed = sorted({str(label) for label in labels if label is not None})
        if not self._explicit:
            next_code = max(self.category_by_class, default=-1) + 1
            for label in observed:
                if label not in self.class_by_category:
                    self._add(label, next_code)
                    next_code += 1
        codes = sorted({self.class_by_category[l] for l in observed if l in self.class_by_category})
        self.fit_classes(codes)

    def fit_classes(self, codes: Iterable[int]) -> None:
        """Build the index space from observed class codes."""
        ordered = sorted({int(c) for c in codes})
        self.index_by_class = {code: i for i, code in enumerate(ordered)}
        self.class_by_index = {i: code for i, code in enumerate(ordered)}

    def class_of(self, label: Any) -> int:
        key = str(label)
        if key not in self.class_by_category:
            raise UnresolvedCategoryError(f"Unknown category {key!r}")
        return self.class_by_category[key]

    def index_of_class(self, code: int) -> int:
        code = int(code)
        if code not in self.index_by_class:
            raise UnresolvedCategoryError(f"Class {code} was not observed in training")
        return self.index_by_class[code]

    def index_of(self, label: Any) -> int:
        return self.index_of_class(self.class_of(label))

    def class_of_index(self, index: float) -> int:
        """Class code nearest to a (possibly fractional) compact index."""
        if self.n_classes == 0:
            raise UnresolvedCategoryError("No classes observed in training")
        i = int(np.clip(np.rint(index), 0, self.n_classes - 1))
        return self.class_by_index[i]

    def label_of_index(self, index: float) -> Optional[str]:
        return self.category_by_class.get(self.class_of_index(index))

    def to_dict(self) -> Dict[str, int]:
        return dict(self.class_by_category)


class CategoricalItem(BaseItem):
    """
    Categorical variable; the model sees the compact class index.

    Parameters:
        name: Item name
        io_type: Input or Output
        training: Training labels
        forecast: Forecast labels (inputs) or stored predictions (outputs)
        categories: Optional explicit label -> class code mapping
        properties: Free-form metadata
    """

    kind = ItemKind.CATEGORICAL
    value_type = ValueType.CATEGORICAL

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        training: Optional[Iterable[Any]] = None,
        forecast: Optional[Iterable[Any]] = None,
        categories: Optional[Dict[str, int]] = None,
        properties: Optional[Dict[str, Any]] = None
    ):
        super().__init__(name, io_type, properties)
        training = [] if training is None else training
        forecast = [] if forecast is None else forecast
        self._training: List[Optional[str]] = [self._label(v) for v in training]
        self._forecast: List[Optional[str]] = [self._label(v) for v in forecast]
        self._uncertainty: List[float] = [float("nan")] * len(self._forecast)
        self.category_map = CategoryMap(categories)
        self.category_map.fit_labels(self._training)

    @staticmethod
    def _label(value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @property
    def categories(self) -> Dict[str, int]:
        return self.category_map.to_dict()

    @property
    def training(self) -> List[Optional[str]]:
        return list(self._training)

    @property
    def forecast(self) -> List[Optional[str]]:
        return list(self._forecast)

    @property
    def uncertainty(self) -> List[float]:
        return list(self._uncertainty)

    def clear_forecasts(self) -> None:
        self._forecast = []
        self._uncertainty = []

    def column_count(self) -> int:
        return 1

    def num_training_values(self) -> int:
        return len(self._training)

    def num_forecast_values(self) -> int:
        return len(self._forecast)

    def _index_block(self, label: Optional[str], index: int, strict: bool) -> Float[Array, "1 1"]:
        try:
            if label is None:
                raise UnresolvedCategoryError("Missing category")
            value = float(self.category_map.index_of(label))
        except UnresolvedCategoryError as e:
            if strict:
                raise UnresolvedCategoryError(str(e), self.name, index) from None
            value = float("nan")
        return self._as_block(value, 1)

    def training_values(self, index: int, strict: bool = False) -> Float[Array, "1 1"]:
        return self._index_block(self._training[index], index, strict)

    def forecast_values(self, index: int, strict: bool = False) -> Float[Array, "1 1"]:
        return self._index_block(self._forecast[index], index, strict)

    def set_forecast_values(self, index: int, values, uncertainty) -> None:
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        uncertainty = np.asarray(uncertainty, dtype=np.float64).reshape(-1)
        if values.size != 1 or uncertainty.size != 1:
            raise ShapeError(
                "Forecast width does not match the item",
                item=self.name,
                expected=1,
                actual=(values.size, uncertainty.size)
            )
        self._expand_to(self._forecast, index, None)
        self._expand_to(self._uncertainty, index, float("nan"))
        value = float(values[0])
        self._forecast[index] = (
            self.category_map.label_of_index(value) if np.isfinite(value) else None
        )
        self._uncertainty[index] = float(uncertainty[0])
