"""Model serialization utilities."""

import pickle
from typing import Tuple

import jax.numpy as jnp
import numpy as np

from ..config import MRVMConfig
from ..errors import ModelStateError
from ..kernels.kernel import Kernel
from ..models.rvm import SparseModel

FORMAT_VERSION = 1


def save_model(config: MRVMConfig, model: SparseModel, file_path: str) -> None:
    """
    Save a trained sparse model and its configuration to disk.

    Arrays are stored as NumPy arrays so the file does not depend on the
    JAX device it was trained on.

    Parameters:
        config: Configuration the model was trained with
        model: Trained sparse model
        file_path: Path to save model
    """
    model_state = {
        'format_version': FORMAT_VERSION,
        'config': config.to_dict(),
        'kernel': model.kernel.to_dict(),
        'relevant_features': np.asarray(model.relevant_features),
        'relevant_vectors': np.asarray(model.relevant_vectors),
        'alpha': np.asarray(model.alpha),
        'sigma': np.asarray(model.sigma),
        'mu': np.asarray(model.mu),
        'omega': np.asarray(model.omega),
        'converged': bool(model.converged),
        'n_iterations': int(model.n_iterations),
    }

    with open(file_path, 'wb') as f:
        pickle.dump(model_state, f)


def load_model(file_path: str) -> Tuple[MRVMConfig, SparseModel]:
    """
    Load a saved sparse model from disk.

    Parameters:
        file_path: Path to saved model

    Returns:
        Tuple of (configuration, sparse model)
    """
    with open(file_path, 'rb') as f:
        model_state = pickle.load(f)

    if model_state.get('format_version') != FORMAT_VERSION:
        raise ModelStateError(
            f"Unsupported model file version: {model_state.get('format_version')!r}"
        )

    model = SparseModel(
        kernel=Kernel.from_dict(model_state['kernel']),
        relevant_features=jnp.asarray(model_state['relevant_features']),
        relevant_vectors=np.asarray(model_state['relevant_vectors']),
        alpha=jnp.asarray(model_state['alpha']),
        sigma=jnp.asarray(model_state['sigma']),
        mu=jnp.asarray(model_state['mu']),
        omega=jnp.asarray(model_state['omega']),
        converged=model_state['converged'],
        n_iterations=model_state['n_iterations']
    )
    return MRVMConfig.from_dict(model_state['config']), model
