"""Assembly of row-aligned feature and target matrices from items."""

import logging
from typing import List, Optional, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
import pandas as pd
from jaxtyping import Array, Float

from .formats import AssembledMatrices, AssemblyIssue
from ..errors import DomainError, ShapeError
from ..items.base import Item

logger = logging.getLogger(__name__)


class ItemMatrixAssembler:
    """
    Flattens heterogeneous items into one feature and one target matrix.

    Items with one row per value are replicated across the expansion
    factor of the window items, so every item contributes to every
    physical row. All counts are checked before any matrix is built.

    Parameters:
        inputs: Input items, in column order
        outputs: Output items, in column order
        strict: Raise the first per-row domain error instead of masking
            the affected rows
    """

    def __init__(
        self,
        inputs: Sequence[Item],
        outputs: Sequence[Item] = (),
        strict: bool = False
    ):
        self.inputs = list(inputs)
        self.outputs = list(outputs)
        self.strict = strict

    @staticmethod
    def column_count(items: Sequence[Item]) -> int:
        """Total feature width of ``items``."""
        return sum(item.column_count() for item in items)

    def _participants(self, training: bool) -> List[Item]:
        return self.inputs + self.outputs if training else list(self.inputs)

    def logical_count(self, training: bool = True) -> int:
        """
        Number of logical samples shared by every participating item.

        Raises:
            ShapeError: If items disagree or there are no samples
        """
        items = self._participants(training)
        if not self.inputs:
            raise ShapeError("At least one input item is required")
        if training and not self.outputs:
            raise ShapeError("At least one output item is required for training")

        counts = {
            item.name: item.num_training_values() if training else item.num_forecast_values()
            for item in items
        }
        first_name = items[0].name
        expected = counts[first_name]
        for name, count in counts.items():
            if count != expected:
                kind = "training" if training else "forecast"
                raise ShapeError(
                    f"Items disagree on the number of {kind} values",
                    item=name,
                    expected=expected,
                    actual=count
                )
        if expected == 0:
            raise ShapeError(
                "No training values" if training else "No forecast values",
                item=first_name
            )
        return expected

    def rows_per_value(self) -> int:
        """
        Expansion factor of one logical sample.

        Every multi-row item must report the same number of rows.
        """
        rows = 1
        owner = None
        for item in self.inputs + self.outputs:
            n = item.num_rows_per_value()
            if n < 1:
                raise ShapeError("Item reports no rows per value", item=item.name, actual=n)
            if n == 1:
                continue
            if rows == 1:
                rows, owner = n, item.name
            elif n != rows:
                raise ShapeError(
                    f"Rows per value differ from item {owner!r}",
                    item=item.name,
                    expected=rows,
                    actual=n
                )
        return rows

    def validate(self, training: bool = True) -> Tuple[int, int]:
        """Check all counts; returns (logical samples, rows per value)."""
        n_values = self.logical_count(training)
        rows = self.rows_per_value()
        if training:
            self.column_count(self.outputs)
        self.column_count(self.inputs)
        return n_values, rows

    def _block(
        self,
        item: Item,
        index: int,
        training: bool,
        rows: int
    ) -> Tuple[np.ndarray, np.ndarray, Optional[str]]:
        getter = item.training_values if training else item.forecast_values
        block = np.asarray(getter(index), dtype=np.float64)
        expected_rows = item.num_rows_per_value()
        expected = (expected_rows, item.column_count())
        if block.shape != expected:
            raise ShapeError(
                "Item returned a block of the wrong shape",
                item=item.name,
                expected=expected,
                actual=block.shape
            )
        if expected_rows == 1 and rows > 1:
            block = np.repeat(block, rows, axis=0)

        bad = ~np.all(np.isfinite(block), axis=1)
        if not bad.any():
            return block, bad, None

        # Ask the item for the strict variant to get the precise reason
        try:
            getter(index, strict=True)
        except DomainError as e:
            if self.strict:
                raise
            return block, bad, str(e)
        if self.strict:
            raise DomainError("Non-finite value", item.name, int(np.flatnonzero(bad)[0]))
        return block, bad, "Non-finite value"

    def _stack(
        self,
        items: Sequence[Item],
        n_values: int,
        rows: int,
        training: bool,
        issues: List[AssemblyIssue]
    ) -> Tuple[np.ndarray, np.ndarray]:
        width = self.column_count(items)
        matrix = np.empty((n_values * rows, width), dtype=np.float64)
        bad_rows = np.zeros(n_values * rows, dtype=bool)
        for v in range(n_values):
            start = v * rows
            offset = 0
            for item in items:
                block, bad, reason = self._block(item, v, training, rows)
                cols = block.shape[1]
                matrix[start:start + rows, offset:offset + cols] = block
                offset += cols
                if reason is not None:
                    for r in np.flatnonzero(bad):
                        issues.append(AssemblyIssue(item.name, v, start + int(r), reason))
                    bad_rows[start:start + rows] |= bad
        return matrix, bad_rows

    def assemble(self, training: bool = True) -> AssembledMatrices:
        """
        Build the row-aligned matrices.

        Parameters:
            training: Training matrices (features and targets) when True,
                forecast features otherwise

        Returns:
            AssembledMatrices; ``targets`` is None for forecast assembly

        Raises:
            ShapeError: On any count or width mismatch, before any matrix
                is built
            DomainError: On the first bad row when ``strict`` is set
        """
        n_values, rows = self.validate(training)
        issues: List[AssemblyIssue] = []

        features, bad = self._stack(self.inputs, n_values, rows, training, issues)
        targets = None
        if training:
            targets, bad_targets = self._stack(self.outputs, n_values, rows, training, issues)
            bad |= bad_targets

        if issues:
            logger.warning(
                "Masked %d of %d %s rows with domain errors",
                int(bad.sum()), bad.shape[0], "training" if training else "forecast"
            )
            for issue in issues:
                logger.debug("Row %d of item %r (value %d): %s",
                             issue.row, issue.item, issue.value_index, issue.reason)

        return AssembledMatrices(
            features=jnp.asarray(features),
            targets=None if targets is None else jnp.asarray(targets),
            rows_per_value=rows,
            row_mask=~bad,
            value_index=np.repeat(np.arange(n_values), rows),
            issues=tuple(issues)
        )

    def write_back(
        self,
        predictions: Float[Array, "rows v"],
        uncertainty: Float[Array, "rows v"],
        rows_per_value: int,
        outputs: Optional[Sequence[Item]] = None
    ) -> None:
        """
        Fold physical prediction rows into the output items.

        Window items receive all their rows; single-row items receive the
        mean over the replicated rows, with the root of the mean variance
        as uncertainty. NaN rows are ignored when folding.

        Parameters:
            predictions: Predicted values, one column block per output item
            uncertainty: Predictive standard deviations, same shape
            rows_per_value: Physical rows per logical sample
            outputs: Output items; defaults to the assembler's outputs
        """
        outputs = self.outputs if outputs is None else list(outputs)
        predictions = np.asarray(predictions, dtype=np.float64)
        uncertainty = np.asarray(uncertainty, dtype=np.float64)
        width = self.column_count(outputs)
        if predictions.ndim != 2 or predictions.shape[1] != width:
            raise ShapeError(
                "Prediction width does not match the output items",
                expected=width,
                actual=predictions.shape
            )
        if predictions.shape[0] % rows_per_value:
            raise ShapeError(
                "Prediction rows are not a multiple of the rows per value",
                expected=rows_per_value,
                actual=predictions.shape[0]
            )

        n_values = predictions.shape[0] // rows_per_value
        offset = 0
        for item in outputs:
            cols = item.column_count()
            for v in range(n_values):
                rows = slice(v * rows_per_value, (v + 1) * rows_per_value)
                values = predictions[rows, offset:offset + cols]
                stds = uncertainty[rows, offset:offset + cols]
                if item.num_rows_per_value() == 1 and rows_per_value > 1:
                    values, stds = _fold_rows(values, stds)
                item.set_forecast_values(v, values, stds)
            offset += cols

    def to_frame(self, matrices: AssembledMatrices) -> pd.DataFrame:
        """
        Assembled matrices as a labelled DataFrame.

        Columns are named after their items (``name[j]`` for multi-column
        items) with targets prefixed by ``target:``.
        """
        frame = pd.DataFrame(
            np.asarray(matrices.features), columns=column_labels(self.inputs)
        )
        if matrices.targets is not None:
            targets = pd.DataFrame(
                np.asarray(matrices.targets),
                columns=[f"target:{c}" for c in column_labels(self.outputs)]
            )
            frame = pd.concat([frame, targets], axis=1)
        frame.insert(0, "value_index", matrices.value_index)
        frame["valid"] = matrices.row_mask
        return frame


def column_labels(items: Sequence[Item]) -> List[str]:
    labels = []
    for item in items:
        n = item.column_count()
        if n == 1:
            labels.append(item.name)
        else:
            labels.extend(f"{item.name}[{j}]" for j in range(n))
    return labels


def _fold_rows(values: np.ndarray, stds: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Mean of finite rows and root of their mean variance, per column."""
    finite = np.isfinite(values)
    counts = finite.sum(axis=0)
    safe = np.maximum(counts, 1)
    mean = np.where(finite, values, 0.0).sum(axis=0) / safe
    var = np.where(finite, np.nan_to_num(stds) ** 2, 0.0).sum(axis=0) / safe
    empty = counts == 0
    mean[empty] = np.nan
    var[empty] = np.nan
    return mean[None, :], np.sqrt(var)[None, :]
