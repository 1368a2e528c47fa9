"""Tests for project configuration."""

import pytest

from mrvm.config import Algorithm, Mode, MRVMConfig
from mrvm.errors import ConfigurationError
from mrvm.kernels.kernel import KernelType


def test_defaults():
    """Default configuration trains and forecasts with the fast algorithm."""
    config = MRVMConfig()
    assert config.mode is Mode.TRAINING_AND_REGRESSION
    assert config.algorithm is Algorithm.FMRVM
    assert config.kernel_type is KernelType.GAUSSIAN
    assert not config.strict


def test_string_fields_are_parsed():
    """Enum fields accept their names."""
    config = MRVMConfig(mode="Regression", algorithm="MRVM", kernel_type="Laplace")
    assert config.mode is Mode.REGRESSION
    assert config.algorithm is Algorithm.MRVM
    assert config.kernel_type is KernelType.LAPLACE


@pytest.mark.parametrize("kwargs", [
    {"mode": "forecasting"},
    {"algorithm": "svm"},
    {"kernel_type": "sigmoid"},
    {"max_iterations": 0},
    {"tolerance": 0.0},
    {"length_scale": -2.0},
    {"n_workers": 0},
    {"noise_floor": -1e-3},
    {"batch_size": 0},
])
def test_invalid_values(kwargs):
    """Invalid values raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        MRVMConfig(**kwargs)


def test_build_kernel():
    """The kernel carries the configured hyperparameters."""
    kernel = MRVMConfig(kernel_type="cauchy", length_scale=4.0, use_bias=True).build_kernel()
    assert kernel.kernel_type is KernelType.CAUCHY
    assert kernel.length_scale == 4.0
    assert kernel.use_bias


def test_dict_round_trip():
    """to_dict/from_dict reproduce the configuration."""
    config = MRVMConfig(max_iterations=50, mode="training", kernel_type="spline",
                        matrix_output_file="matrices.csv")
    state = config.to_dict()
    assert state["mode"] == "training"
    assert state["kernel_type"] == "spline"
    assert MRVMConfig.from_dict(state) == config


def test_unknown_keys_rejected():
    """Unknown keys are reported instead of ignored."""
    with pytest.raises(ConfigurationError, match="iterations"):
        MRVMConfig.from_dict({"iterations": 10})
