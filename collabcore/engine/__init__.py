"""collabcore Engine — Configuration, error hierarchy, structured logging."""

from collabcore.engine.config import CollabConfig, get_config, load_config  # noqa: F401
from collabcore.engine.errors import (  # noqa: F401
    CollabConfigError,
    CollabError,
    CollabValidationError,
    DocumentNotFoundError,
    IdentityLookupError,
    MalformedAuditEntryError,
    StorageUnavailableError,
)

__all__ = [
    "CollabConfig",
    "get_config",
    "load_config",
    "CollabError",
    "CollabConfigError",
    "CollabValidationError",
    "DocumentNotFoundError",
    "IdentityLookupError",
    "MalformedAuditEntryError",
    "StorageUnavailableError",
]
