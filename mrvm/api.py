"""High-level API for MRVM."""

import logging
from typing import Dict, List, Optional

import jax.numpy as jnp
import numpy as np
import pandas as pd

from .config import Algorithm, Mode, MRVMConfig
from .data.assembly import ItemMatrixAssembler, column_labels
from .data.formats import AssembledMatrices
from .errors import ConfigurationError, ModelStateError, ShapeError
from .items.base import IOType, Item
from .items.raster import RasterCapable
from .kernels.kernel import Kernel
from .models.rvm import RVMFitResult, RVMTrainer, SparseModel
from .prediction.regression import RegressionEngine
from .sampling.bootstrap import RasterBootstrap
from .utils.gpu import get_device_info
from .utils.serialization import load_model, save_model
from .utils.validation import fit_metrics, noise_correlation

logger = logging.getLogger(__name__)


class MRVM:
    """
    Multivariate relevance vector machine over named items.

    Example usage:

        model = MRVM(MRVMConfig(kernel_type="gaussian", length_scale=2.0))

        model.add_input_item(RealItem("elevation", training=elev))
        model.add_output_item(RealItem("yield", IOType.OUTPUT, training=crop))

        # Train and forecast according to config.mode
        model.start()

        # Persist the sparse model
        model.save_model("yield.mrvm")

    Parameters:
        config: Training and regression settings
        name: Name used in log records
        bootstrap: Sampler shared by the raster items
    """

    def __init__(
        self,
        config: Optional[MRVMConfig] = None,
        name: str = "mrvm",
        bootstrap: Optional[RasterBootstrap] = None
    ):
        self.config = config if config is not None else MRVMConfig()
        self.name = name
        self._kernel = self.config.build_kernel()
        self._inputs: Dict[str, Item] = {}
        self._outputs: Dict[str, Item] = {}
        self._bootstrap = bootstrap

        self._trainer: Optional[RVMTrainer] = None
        self._fit_result: Optional[RVMFitResult] = None
        self._model: Optional[SparseModel] = None
        self._training_matrices: Optional[AssembledMatrices] = None
        self._forecast_matrices: Optional[AssembledMatrices] = None

    # Items

    @property
    def kernel(self) -> Kernel:
        return self._kernel

    @property
    def input_items(self) -> List[Item]:
        return list(self._inputs.values())

    @property
    def output_items(self) -> List[Item]:
        return list(self._outputs.values())

    def add_input_item(self, item: Item) -> None:
        """Add (or replace by name) an input item; column order follows insertion."""
        if item.io_type is not IOType.INPUT:
            raise ConfigurationError(f"Item {item.name!r} is not an input item")
        self._inputs[item.name] = item
        self._register_raster(item)
        self._training_matrices = None

    def remove_input_item(self, name: str) -> bool:
        item = self._inputs.pop(name, None)
        self._unregister_raster(item)
        self._training_matrices = None
        return item is not None

    def add_output_item(self, item: Item) -> None:
        """Add (or replace by name) an output item; column order follows insertion."""
        if item.io_type is not IOType.OUTPUT:
            raise ConfigurationError(f"Item {item.name!r} is not an output item")
        self._outputs[item.name] = item
        self._register_raster(item)
        self._training_matrices = None

    def remove_output_item(self, name: str) -> bool:
        item = self._outputs.pop(name, None)
        self._unregister_raster(item)
        self._training_matrices = None
        return item is not None

    # Bootstrap

    @property
    def bootstrap(self) -> Optional[RasterBootstrap]:
        return self._bootstrap

    @bootstrap.setter
    def bootstrap(self, bootstrap: Optional[RasterBootstrap]) -> None:
        self._bootstrap = bootstrap
        for item in self.input_items + self.output_items:
            self._register_raster(item)
        self._training_matrices = None

    def _register_raster(self, item: Item) -> None:
        if self._bootstrap is not None and isinstance(item, RasterCapable):
            self._bootstrap.add_raster_item(item)

    def _unregister_raster(self, item: Optional[Item]) -> None:
        if self._bootstrap is not None and isinstance(item, RasterCapable):
            self._bootstrap.remove_raster_item(item)

    def _prepare_bootstrap(self) -> None:
        if self._bootstrap is None or not self._bootstrap.raster_items:
            return
        if self._bootstrap.layout() is None:
            self._bootstrap.sample_rasters()
        self._bootstrap.set_raster_item_locations()

    # Validation and assembly

    def _assembler(self) -> ItemMatrixAssembler:
        return ItemMatrixAssembler(self.input_items, self.output_items, strict=self.config.strict)

    def validate_inputs(self, training: bool = True) -> None:
        """
        Check item counts, widths and sampling windows before a run.

        Raises:
            ShapeError: On any count mismatch or a raster item without
                sampling windows
        """
        self._prepare_bootstrap()
        assembler = self._assembler()
        n_values, rows = assembler.validate(training)
        logger.info(
            "%s: %d %s values, %d rows per value, %d input columns",
            self.name, n_values, "training" if training else "forecast",
            rows, assembler.column_count(self.input_items)
        )

    # Run control

    def start(self) -> "MRVM":
        """
        Run training and/or regression as selected by ``config.mode``.

        Returns:
            self (for method chaining)
        """
        logger.info("%s: JAX devices %s", self.name, get_device_info()['devices'])
        mode = self.config.mode

        if mode in (Mode.TRAINING, Mode.TRAINING_AND_REGRESSION):
            self.perform_training()
        if mode in (Mode.REGRESSION, Mode.TRAINING_AND_REGRESSION):
            self.perform_regression()
        return self

    def perform_training(self) -> RVMFitResult:
        """Validate, assemble the training matrices and run the configured algorithm."""
        self.validate_inputs(training=True)
        assembler = self._assembler()
        self._training_matrices = assembler.assemble(training=True)

        if self.config.matrix_output_file:
            assembler.to_frame(self._training_matrices).to_csv(
                self.config.matrix_output_file, index=False
            )
            logger.info("Wrote training matrices to %s", self.config.matrix_output_file)

        if self.config.algorithm is Algorithm.MRVM:
            return self.mrvm()
        return self.fmrvm()

    def mrvm(self) -> RVMFitResult:
        """Train starting with every candidate basis active."""
        return self._train(Algorithm.MRVM)

    def fmrvm(self) -> RVMFitResult:
        """Train starting from a single seed basis."""
        return self._train(Algorithm.FMRVM)

    def _train(self, algorithm: Algorithm) -> RVMFitResult:
        if self._training_matrices is None:
            self.validate_inputs(training=True)
            self._training_matrices = self._assembler().assemble(training=True)

        X = self._training_matrices.valid_features()
        T = self._training_matrices.valid_targets()
        if X.shape[0] == 0:
            raise ShapeError("Every training row was masked by domain errors")

        self._trainer = RVMTrainer(
            kernel=self._kernel,
            tolerance=self.config.tolerance,
            max_iterations=self.config.max_iterations,
            noise_floor=self.config.noise_floor,
            n_workers=self.config.n_workers,
            verbose=self.config.verbose
        )
        result = self._trainer.fit(X, T, algorithm)
        model = SparseModel.from_fit(self._kernel, X, result)

        # The trainer only saw the unmasked rows; report assembled row indices
        training_rows = np.flatnonzero(np.asarray(self._training_matrices.row_mask))
        self._fit_result = result._replace(
            relevant_vectors=training_rows[result.relevant_vectors]
        )
        self._model = model._replace(relevant_vectors=training_rows[model.relevant_vectors])
        logger.info(
            "%s: %d relevant vectors of %d training rows",
            self.name, self._model.n_relevant, X.shape[0]
        )
        return self._fit_result

    def request_stop(self) -> None:
        """Stop a running training at the next iteration boundary."""
        if self._trainer is not None:
            self._trainer.request_stop()

    def perform_regression(self) -> AssembledMatrices:
        """
        Predict the forecast rows and write the results into the output items.

        Rows masked by domain errors receive NaN predictions.

        Returns:
            The assembled forecast matrices
        """
        model = self._require_model()
        self.validate_inputs(training=False)
        assembler = self._assembler()
        width = assembler.column_count(self.output_items)
        if width != model.n_outputs:
            raise ShapeError(
                "Output items do not match the trained model",
                expected=model.n_outputs,
                actual=width
            )

        matrices = assembler.assemble(training=False)
        engine = RegressionEngine(
            model, batch_size=self.config.batch_size, show_progress=self.config.verbose
        )
        mean, std = engine.predict(matrices.valid_features())

        predictions = np.full((matrices.n_rows, width), np.nan)
        uncertainty = np.full((matrices.n_rows, width), np.nan)
        predictions[matrices.row_mask] = np.asarray(mean)
        uncertainty[matrices.row_mask] = np.asarray(std)

        # Forecasts of an earlier run may have more values than this one
        for item in self.output_items:
            item.clear_forecasts()
        assembler.write_back(predictions, uncertainty, matrices.rows_per_value)
        self._forecast_matrices = matrices
        logger.info(
            "%s: predicted %d of %d forecast rows",
            self.name, int(matrices.row_mask.sum()), matrices.n_rows
        )
        return matrices

    # Model state

    def _require_model(self) -> SparseModel:
        if self._model is None:
            raise ModelStateError("Regression requires a trained or loaded model")
        return self._model

    @property
    def model(self) -> Optional[SparseModel]:
        return self._model

    @property
    def fit_result(self) -> Optional[RVMFitResult]:
        return self._fit_result

    @property
    def training_matrices(self) -> Optional[AssembledMatrices]:
        return self._training_matrices

    @property
    def forecast_matrices(self) -> Optional[AssembledMatrices]:
        return self._forecast_matrices

    @property
    def converged(self) -> bool:
        return self._model is not None and bool(self._model.converged)

    @property
    def number_of_iterations(self) -> int:
        return 0 if self._model is None else int(self._model.n_iterations)

    @property
    def used_relevant_vectors(self) -> np.ndarray:
        return self._require_model().relevant_vectors

    @property
    def alpha(self) -> jnp.ndarray:
        return self._require_model().alpha

    @property
    def sigma(self) -> jnp.ndarray:
        return self._require_model().sigma

    @property
    def omega(self) -> jnp.ndarray:
        return self._require_model().omega

    @property
    def mu(self) -> jnp.ndarray:
        return self._require_model().mu

    def training_report(self) -> Dict[str, pd.DataFrame]:
        """
        Goodness of fit on the training rows.

        Returns:
            Dictionary with ``metrics`` (R2, RMSE, MAE per output column)
            and ``noise_correlation`` (correlation matrix of Omega)
        """
        model = self._require_model()
        if self._training_matrices is None:
            raise ModelStateError("Training matrices are not available for a loaded model")

        X = self._training_matrices.valid_features()
        T = self._training_matrices.valid_targets()
        mean = RegressionEngine(model, batch_size=self.config.batch_size).predict_mean(X)
        names = column_labels(self.output_items)
        return {
            'metrics': fit_metrics(T, mean, names),
            'noise_correlation': noise_correlation(model.omega, names),
        }

    # Persistence

    def save_model(self, file_path: str) -> None:
        """Save the configuration and sparse model to ``file_path``."""
        save_model(self.config, self._require_model(), file_path)
        logger.info("%s: saved model to %s", self.name, file_path)

    def load_model(self, file_path: str) -> SparseModel:
        """
        Load a sparse model saved by :meth:`save_model`.

        The kernel of the loaded model replaces the configured one; other
        configuration fields are kept.
        """
        _, model = load_model(file_path)
        self._model = model
        self._kernel = model.kernel
        self._fit_result = None
        self._training_matrices = None
        logger.info("%s: loaded model with %d relevant vectors", self.name, model.n_relevant)
        return model

    @classmethod
    def from_saved(cls, file_path: str, name: str = "mrvm") -> "MRVM":
        """New instance with the configuration and model stored in ``file_path``."""
        config, model = load_model(file_path)
        instance = cls(config, name=name)
        instance._model = model
        instance._kernel = model.kernel
        return instance
