from promboard.modules.persistence.gateway import (
    DASHBOARD_FILE_NAME,
    PersistenceGateway,
    panel_file_name,
    validate_panel_config,
)
from promboard.modules.persistence.storage import (
    JsonFileStorage,
    MemoryStorage,
    Storage,
)
from promboard.modules.persistence.throttle import Throttle

__all__ = [
    "DASHBOARD_FILE_NAME",
    "PersistenceGateway",
    "panel_file_name",
    "validate_panel_config",
    "JsonFileStorage",
    "MemoryStorage",
    "Storage",
    "Throttle",
]
