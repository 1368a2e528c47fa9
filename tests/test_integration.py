"""Integration tests for the full workflow."""

import pytest
import jax.numpy as jnp
import numpy as np
import pandas as pd

from mrvm import (
    MRVM,
    CategoricalItem,
    ConfigurationError,
    IOType,
    ModelStateError,
    MRVMConfig,
    RealItem,
    ShapeError,
)


@pytest.fixture
def sine_items():
    """One input, one output: y = sin(x / 4) on 30 integer points."""
    x_train = np.arange(30, dtype=float)
    x_forecast = np.arange(29, dtype=float) + 0.5
    x = RealItem("x", training=x_train, forecast=x_forecast)
    y = RealItem("y", IOType.OUTPUT, training=np.sin(x_train / 4.0))
    return x, y


def _sine_model(x, y, **config):
    model = MRVM(MRVMConfig(kernel_type="gaussian", length_scale=3.0, **config))
    model.add_input_item(x)
    model.add_output_item(y)
    return model


def test_scalar_workflow(sine_items):
    """Train and forecast a smooth function end to end."""
    x, y = sine_items
    model = _sine_model(x, y).start()

    assert 0 < len(model.used_relevant_vectors) < 30
    assert model.number_of_iterations > 0
    assert model.training_matrices.n_rows == 30

    assert len(y.forecast) == 29
    expected = np.sin(np.asarray(x.forecast) / 4.0)
    assert np.allclose(y.forecast, expected, atol=0.05)
    assert np.all(np.asarray(y.uncertainty) > 0)


def test_relevant_vectors_index_assembled_rows(tmp_path):
    """Relevant vectors name training rows even when earlier rows are masked."""
    x_train = np.arange(30, dtype=float)
    targets = np.sin(x_train / 4.0)
    targets[:5] = np.nan
    x = RealItem("x", training=x_train)
    y = RealItem("y", IOType.OUTPUT, training=targets)
    model = _sine_model(x, y, mode="training").start()

    matrices = model.training_matrices
    assert int(matrices.row_mask.sum()) == 25
    relevant = model.used_relevant_vectors
    assert relevant.min() >= 5
    assert matrices.row_mask[relevant].all()
    assert np.array_equal(
        np.asarray(matrices.features)[relevant], np.asarray(model.model.relevant_features)
    )
    assert np.array_equal(model.fit_result.relevant_vectors, relevant)

    path = str(tmp_path / "masked.pkl")
    model.save_model(path)
    assert np.array_equal(MRVM.from_saved(path).used_relevant_vectors, relevant)


def test_regression_replaces_previous_forecasts(sine_items):
    """A second regression with fewer values leaves no stale forecasts."""
    x, y = sine_items
    model = _sine_model(x, y).start()
    assert len(y.forecast) == 29

    x.set_forecast([2.0, 6.0])
    model.perform_regression()
    assert len(y.forecast) == 2
    assert np.allclose(y.forecast, np.sin(np.array([2.0, 6.0]) / 4.0), atol=0.05)


def test_training_report(sine_items):
    """Training diagnostics cover every output column."""
    x, y = sine_items
    model = _sine_model(x, y, mode="training").start()
    report = model.training_report()

    metrics = report['metrics']
    assert list(metrics.index) == ["y"]
    assert metrics.loc["y", "r2"] > 0.99
    assert metrics.loc["y", "n"] == 30
    assert report['noise_correlation'].shape == (1, 1)
    assert y.forecast == []


def test_matrix_output_file(sine_items, tmp_path):
    """The assembled training matrices can be written for inspection."""
    x, y = sine_items
    path = tmp_path / "matrices.csv"
    _sine_model(x, y, mode="training", matrix_output_file=str(path)).start()

    frame = pd.read_csv(path)
    assert list(frame.columns) == ["value_index", "x", "target:y", "valid"]
    assert len(frame) == 30
    assert frame["valid"].all()


def test_full_algorithm(sparse_dataset):
    """The full-basis variant also fits the training data."""
    x = RealItem("x", training=np.asarray(sparse_dataset.X[:, 0]))
    y = RealItem("y", IOType.OUTPUT, training=np.asarray(sparse_dataset.T[:, 0]))
    model = MRVM(MRVMConfig(mode="training", algorithm="mrvm", length_scale=1.0, max_iterations=300))
    model.add_input_item(x)
    model.add_output_item(y)
    model.start()
    assert len(model.used_relevant_vectors) < 30
    metrics = model.training_report()['metrics']
    assert metrics.loc["y", "r2"] > 0.95


def test_regression_without_model(sine_items):
    """Regression needs a trained or loaded model."""
    x, y = sine_items
    model = _sine_model(x, y, mode="regression")
    with pytest.raises(ModelStateError):
        model.start()
    with pytest.raises(ModelStateError):
        _ = model.alpha


def test_item_roles_are_checked(sine_items):
    """Inputs and outputs cannot be swapped."""
    x, y = sine_items
    model = MRVM()
    with pytest.raises(ConfigurationError):
        model.add_input_item(y)
    with pytest.raises(ConfigurationError):
        model.add_output_item(x)


def test_item_management(sine_items):
    """Items are replaced by name and can be removed."""
    x, y = sine_items
    model = _sine_model(x, y)
    model.add_input_item(RealItem("x", training=[0.0]))
    assert len(model.input_items) == 1
    assert model.remove_input_item("x")
    assert not model.remove_input_item("x")
    assert model.remove_output_item("y")
    assert model.input_items == [] and model.output_items == []


def test_count_mismatch_stops_training(sine_items):
    """Items that disagree on the number of values fail validation."""
    x, _ = sine_items
    y = RealItem("y", IOType.OUTPUT, training=np.zeros(31))
    model = _sine_model(x, y, mode="training")
    with pytest.raises(ShapeError):
        model.start()
    assert model.model is None


def test_categorical_input_masks_unknown_forecasts(sine_items):
    """Forecast rows with unseen categories get NaN predictions."""
    x, y = sine_items
    group = CategoricalItem(
        "group",
        training=["a" if v < 15 else "b" for v in range(30)],
        forecast=["a"] * 28 + ["z"]
    )
    model = _sine_model(x, y)
    model.add_input_item(group)
    model.start()

    assert np.isnan(y.forecast[-1])
    assert np.all(np.isfinite(y.forecast[:-1]))
    issues = model.forecast_matrices.issues
    assert [issue.value_index for issue in issues] == [28]


def test_raster_workflow(raster_items, bootstrap):
    """Raster items are sampled, trained and written back as a forecast layer."""
    x, y = raster_items
    model = MRVM(MRVMConfig(kernel_type="gaussian", length_scale=0.5), bootstrap=bootstrap)
    model.add_input_item(x)
    model.add_output_item(y)
    model.start()

    layout = bootstrap.layout()
    assert model.training_matrices.rows_per_value == layout.n_rows
    assert model.training_matrices.n_rows == 2 * layout.n_rows

    forecast = np.asarray(y.forecast_grid.data[0])
    x_forecast = np.asarray(x.forecast_grid.data[0])
    covered = np.zeros(forecast.shape, dtype=bool)
    covered[layout.rows, layout.cols] = True

    assert np.allclose(forecast[covered], 2.0 * x_forecast[covered] + 1.0, atol=0.05)
    assert np.all(forecast[~covered] == y.forecast_grid.nodata)
    uncertainty = np.asarray(y.uncertainty_grid.data[0])
    assert np.all(uncertainty[covered] > 0)


def test_raster_output_must_have_windows(raster_items):
    """Raster items without a sampler cannot be assembled."""
    x, y = raster_items
    model = MRVM(MRVMConfig(mode="training"))
    model.add_input_item(x)
    model.add_output_item(y)
    with pytest.raises(ShapeError):
        model.start()


def test_model_round_trip(sine_items, tmp_path):
    """A saved model gives the same forecasts after loading."""
    x, y = sine_items
    trained = _sine_model(x, y).start()
    path = str(tmp_path / "sine.mrvm")
    trained.save_model(path)

    forecast_x = RealItem("x", forecast=x.forecast)
    forecast_y = RealItem("y", IOType.OUTPUT)
    loaded = MRVM.from_saved(path)
    loaded.add_input_item(forecast_x)
    loaded.add_output_item(forecast_y)
    loaded.perform_regression()

    assert np.allclose(forecast_y.forecast, y.forecast)
    assert jnp.allclose(loaded.mu, trained.mu)
    assert loaded.kernel.length_scale == 3.0
