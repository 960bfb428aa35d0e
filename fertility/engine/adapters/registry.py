"""
Adapter Registry.

Maps design IDs (``RegressionSpec.design``) to adapter classes and
dynamically imports them on first use.
"""

from __future__ import annotations

import importlib

from fertility.engine.adapters.base import EstimatorAdapter
from fertility.errors import ConfigurationError

# Built-in adapter mapping (design_id -> module.ClassName)
_BUILTIN_ADAPTERS: dict[str, str] = {
    "FE_OLS": "fertility.engine.adapters.fe_ols_adapter.FixedEffectsOLSAdapter",
    "FE_IV": "fertility.engine.adapters.fe_iv_adapter.FixedEffectsIVAdapter",
}

# Cache loaded adapters
_adapter_cache: dict[str, EstimatorAdapter] = {}


def _import_adapter(dotted_path: str) -> type[EstimatorAdapter]:
    """Dynamically import an adapter class from a dotted path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    if not (isinstance(cls, type) and issubclass(cls, EstimatorAdapter)):
        raise TypeError(f"{dotted_path} is not an EstimatorAdapter subclass")
    return cls


def get_adapter(design_id: str) -> EstimatorAdapter:
    """Get an adapter instance for a design ID.

    Args:
        design_id: Design identifier ("FE_OLS" or "FE_IV").

    Returns:
        An EstimatorAdapter instance.

    Raises:
        ConfigurationError: If no adapter is registered for the design.
    """
    if design_id in _adapter_cache:
        return _adapter_cache[design_id]

    dotted_path = _BUILTIN_ADAPTERS.get(design_id)
    if not dotted_path:
        raise ConfigurationError(
            f"No adapter registered for design '{design_id}'. "
            f"Available: {sorted(_BUILTIN_ADAPTERS)}",
            stage="estimation",
        )

    cls = _import_adapter(dotted_path)
    instance = cls()
    _adapter_cache[design_id] = instance
    return instance


def list_adapters() -> dict[str, str]:
    """List all registered adapter mappings (design_id -> class path)."""
    return dict(_BUILTIN_ADAPTERS)
