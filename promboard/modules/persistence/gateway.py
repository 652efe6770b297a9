import json
import logging
import re
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from promboard import consts
from promboard.exceptions import PanelValidationError
from promboard.modules.panel_state.models import (
    DashboardSnapshot,
    Panel,
    Query,
    new_id,
)
from promboard.modules.panel_state.store import PanelStateStore
from promboard.modules.persistence.storage import JsonFileStorage, Storage
from promboard.modules.persistence.throttle import Throttle

logger = logging.getLogger(__name__)

DASHBOARD_FILE_NAME = "dashboard-config.json"
INVALID_PANEL_FILE = "Invalid panel configuration file."
INVALID_DASHBOARD_FILE = "Invalid dashboard configuration file."

_WHITESPACE_RE = re.compile(r"\s+")

FileContent = Union[str, bytes, Mapping[str, Any]]


def panel_file_name(panel: Panel) -> str:
    stem = _WHITESPACE_RE.sub("_", panel.title) or "panel"
    return f"{stem}-config.json"


def _load_json(content: FileContent, prefix: str) -> Any:
    if isinstance(content, Mapping):
        return dict(content)
    try:
        return json.loads(content)
    except ValueError as e:
        raise PanelValidationError(f"{prefix} Could not parse JSON: {e}") from e


def _describe(error: ValidationError, prefix: str, location: str) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"])
    if field:
        location = f"{location}.{field}"
    return f"{prefix} Invalid '{location}': {first['msg']}."


def _validate_queries(queries: list, prefix: str, location: str, regenerate_ids):
    validated = []
    for i, raw in enumerate(queries):
        query_location = f"{location}[{i}]"
        if not isinstance(raw, Mapping):
            raise PanelValidationError(
                f"{prefix} Invalid '{query_location}': expected an object."
            )
        raw = dict(raw)
        if regenerate_ids:
            raw["id"] = new_id()
        try:
            validated.append(Query.model_validate(raw))
        except ValidationError as e:
            raise PanelValidationError(_describe(e, prefix, query_location)) from e
    return validated


def validate_panel_config(
    config: Any,
    prefix: str = INVALID_PANEL_FILE,
    location: str = "",
    regenerate_ids: bool = True,
) -> Panel:
    """Validate a panel configuration and build a :class:`Panel` from it.

    ``title`` must be a string and ``queries`` an array, every other field is
    optional. With ``regenerate_ids`` the panel and every query get fresh ids.

    Raises:
        PanelValidationError: Naming the first missing or invalid field.
    """
    at = f"{location}." if location else ""
    if not isinstance(config, Mapping):
        raise PanelValidationError(
            f"{prefix} Invalid '{location or 'panel'}': expected an object."
        )
    if not isinstance(config.get("title"), str):
        raise PanelValidationError(
            f"{prefix} Missing or invalid '{at}title': expected a string."
        )
    if not isinstance(config.get("queries"), list):
        raise PanelValidationError(
            f"{prefix} Missing or invalid '{at}queries': expected an array."
        )

    raw = dict(config)
    raw["queries"] = _validate_queries(
        config["queries"], prefix, f"{at}queries", regenerate_ids
    )
    if regenerate_ids or not raw.get("id"):
        raw["id"] = new_id()
    try:
        return Panel.model_validate(raw)
    except ValidationError as e:
        raise PanelValidationError(_describe(e, prefix, location or "panel")) from e


class PersistenceGateway:
    """Durable snapshots of the dashboard plus panel and dashboard files.

    Saving is throttled: at most one write per ``throttle_s`` seconds, with
    rapid saves coalesced so that the latest snapshot is always written.
    Neither saving nor loading ever raises: failures are logged, a failed
    load returns None so the caller can fall back to default panels.

    Args:
        storage: Backend to write snapshots to. Defaults to JSON files in
            ``PROMBOARD_STATE_DIR``.
        key: Storage key of the snapshot.
        throttle_s: Minimum seconds between two writes.
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        key: str = consts.DASHBOARD_STATE_KEY,
        throttle_s: Optional[float] = None,
    ):
        self._storage = storage or JsonFileStorage()
        self._key = key
        if throttle_s is None:
            throttle_s = consts.SAVE_THROTTLE_SECONDS
        self._throttle = Throttle(self._write, throttle_s)

    @property
    def storage(self) -> Storage:
        return self._storage

    def save(self, snapshot: DashboardSnapshot):
        self._throttle(snapshot)

    def flush(self):
        """Write a pending throttled snapshot now."""
        self._throttle.flush()

    def _write(self, snapshot: DashboardSnapshot):
        try:
            self._storage.set(self._key, json.dumps(snapshot.to_dict()))
        except Exception:
            logger.exception("Could not save dashboard state.")

    def load(self) -> Optional[DashboardSnapshot]:
        try:
            serialized = self._storage.get(self._key)
            if serialized is None:
                return None
            return DashboardSnapshot.model_validate(json.loads(serialized))
        except Exception:
            logger.exception("Could not load dashboard state.")
            return None

    def attach(self, store: PanelStateStore) -> Callable[[], None]:
        """Save every new snapshot of ``store``. Returns the unsubscriber."""
        return store.subscribe(self.save)

    def export_panel(self, panel: Panel) -> str:
        """Serialize a panel for download. The panel's own id is left out."""
        return json.dumps(panel.to_dict(include_id=False), indent=2)

    def import_panel(self, content: FileContent) -> Panel:
        """Parse and validate a panel file.

        The returned panel and all of its queries have fresh ids, so it can
        be added next to the panel it was exported from.

        Raises:
            PanelValidationError: If the file is not a valid panel file.
        """
        config = _load_json(content, INVALID_PANEL_FILE)
        return validate_panel_config(config)

    def import_panel_into(
        self,
        store: PanelStateStore,
        content: FileContent,
        panel_id: Optional[str] = None,
    ) -> Panel:
        """Import a panel file into ``store``.

        With ``panel_id`` the title and queries of that panel are replaced,
        otherwise the imported panel is added. The store is not touched if
        validation fails.
        """
        panel = self.import_panel(content)
        if panel_id is None:
            store.add_panel(panel)
        else:
            store.update_panel_from_file(panel_id, panel)
        return panel

    def export_dashboard(self, snapshot: DashboardSnapshot) -> str:
        return json.dumps(snapshot.to_dict(), indent=2)

    def import_dashboard(self, content: FileContent) -> DashboardSnapshot:
        """Parse and validate a whole-dashboard file.

        Panel and query ids are kept, missing ones are generated.

        Raises:
            PanelValidationError: If ``panels`` is missing or not an array,
                or a panel in it is invalid.
        """
        loaded = _load_json(content, INVALID_DASHBOARD_FILE)
        if not isinstance(loaded, Mapping) or not isinstance(
            loaded.get("panels"), list
        ):
            raise PanelValidationError(
                f"{INVALID_DASHBOARD_FILE} Missing 'panels' array."
            )
        instance_details = loaded.get("instanceDetails")
        if instance_details is not None and not isinstance(instance_details, Mapping):
            raise PanelValidationError(
                f"{INVALID_DASHBOARD_FILE} Invalid 'instanceDetails': "
                "expected an object."
            )

        panels = [
            validate_panel_config(
                panel,
                prefix=INVALID_DASHBOARD_FILE,
                location=f"panels[{i}]",
                regenerate_ids=False,
            )
            for i, panel in enumerate(loaded["panels"])
        ]
        fields: Dict[str, Any] = {"panels": panels}
        if instance_details is not None:
            fields["instance_details"] = dict(instance_details)
        return DashboardSnapshot(**fields)

    def import_dashboard_into(
        self, store: PanelStateStore, content: FileContent
    ) -> DashboardSnapshot:
        snapshot = self.import_dashboard(content)
        store.set_dashboard_state(snapshot)
        return snapshot
