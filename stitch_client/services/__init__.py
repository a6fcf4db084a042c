"""
Service helpers that build pipelines for specific Stitch services.
"""

from typing import Any, Callable, Dict

from ..errors import ConfigurationError
from .mongodb import Collection, Database, MongoService


SERVICE_TYPES: Dict[str, Callable[[Any, str], Any]] = {
    "mongodb": MongoService,
}


def get_service(client: Any, service_type: str, name: str) -> Any:
    """Create the helper for a service of the given type."""
    try:
        factory = SERVICE_TYPES[service_type]
    except KeyError:
        raise ConfigurationError(f"unsupported service type: {service_type!r}") from None
    return factory(client, name)


__all__ = ["MongoService", "Database", "Collection", "get_service", "SERVICE_TYPES"]
