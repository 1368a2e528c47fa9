"""Device discovery for the JAX backend."""

import jax


def check_gpu_available() -> bool:
    """
    Check if a GPU is available for JAX.

    Returns:
        True if GPU is available
    """
    try:
        return len(jax.devices("gpu")) > 0
    except RuntimeError:
        # Raised when no GPU backend is installed
        return False


def get_device_info() -> dict:
    """
    Get information about available JAX devices.

    Returns:
        Dictionary with device information
    """
    devices = jax.devices()
    info = {
        'devices': [str(d) for d in devices],
        'default_device': str(devices[0]),
        'gpu_available': check_gpu_available(),
        'device_count': len(devices),
        'x64_enabled': bool(jax.config.jax_enable_x64),
    }

    if info['gpu_available']:
        gpu_devices = jax.devices("gpu")
        info['gpu_devices'] = [str(d) for d in gpu_devices]
        info['gpu_count'] = len(gpu_devices)

    return info
