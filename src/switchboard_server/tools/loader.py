"""Import capability providers named in configuration."""

import importlib
import inspect
import logging

from switchboard_server.tools.provider import CapabilityProvider

logger = logging.getLogger(__name__)


def load_capability_provider(path: str) -> CapabilityProvider:
    """Load a capability provider from a "package.module:attribute" path.

    The attribute may be a provider instance, a provider class, or a
    zero-argument factory returning a provider.

    Args:
        path: Import path in "module:attribute" form

    Returns:
        CapabilityProvider: The loaded provider

    Raises:
        ValueError: If the path is malformed or does not name a provider
        ImportError: If the module cannot be imported
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Invalid provider path '{path}', expected 'module:attribute'")

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'")

    if inspect.isclass(target) or (
        callable(target) and not isinstance(target, CapabilityProvider)
    ):
        target = target()

    if not isinstance(target, CapabilityProvider):
        raise ValueError(f"'{path}' does not resolve to a capability provider")

    logger.debug(f"Loaded capability provider {target.provider_name} from {path}")
    return target
