import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from promboard import consts
from promboard.modules.panel_state.models import (
    DashboardSnapshot,
    Panel,
    Query,
    SeriesAlias,
    default_dashboard_panels,
    new_id,
)
from promboard.modules.promql.naming import METRIC_NAME_LABEL
from promboard.modules.range_query.common import FetchedSeries

logger = logging.getLogger(__name__)

DEFAULT_COMPOUND_PRODUCT_ID = "default-compound-product-id"

Listener = Callable[[DashboardSnapshot], None]


class PanelStateStore:
    """Sole owner of the dashboard's panels, queries and series aliases.

    Every mutation works on a copy of the current snapshot and swaps it in
    only if something changed. Listeners are called with the new snapshot
    after each swap, never for no-ops. Operations addressing a panel or query
    id that does not exist are no-ops.

    Args:
        initial_state: Snapshot to start from, e.g. one restored by the
            persistence gateway.
        default_panels: Panels to start with when ``initial_state`` is None.
            Defaults to the built-in Prometheus panels.
    """

    def __init__(
        self,
        initial_state: Optional[DashboardSnapshot] = None,
        default_panels: Optional[Sequence[Panel]] = None,
    ):
        if initial_state is None:
            if default_panels is None:
                default_panels = default_dashboard_panels()
            initial_state = DashboardSnapshot(
                panels=[p.model_copy(deep=True) for p in default_panels]
            )
        self._state = initial_state
        self._listeners: List[Listener] = []

    @property
    def state(self) -> DashboardSnapshot:
        """The current snapshot. Treat it as read-only."""
        return self._state

    @property
    def panels(self) -> List[Panel]:
        return self._state.panels

    def get_panel(self, panel_id: str) -> Optional[Panel]:
        return self._state.get_panel(panel_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, mutate: Callable[[DashboardSnapshot], bool]) -> bool:
        draft = self._state.model_copy(deep=True)
        if not mutate(draft):
            return False
        self._state = draft
        for listener in list(self._listeners):
            listener(self._state)
        return True

    def _update_query(
        self, panel_id: str, query_id: str, mutate: Callable[[Query], bool]
    ) -> bool:
        def apply(state: DashboardSnapshot) -> bool:
            panel = state.get_panel(panel_id)
            if panel is None:
                return False
            query = panel.get_query(query_id)
            if query is None:
                return False
            return mutate(query)

        return self._update(apply)

    def set_dashboard_state(self, snapshot: DashboardSnapshot):
        """Replace all panels, and the instance details when given."""

        def apply(state: DashboardSnapshot) -> bool:
            state.panels = [p.model_copy(deep=True) for p in snapshot.panels]
            if "instance_details" in snapshot.model_fields_set:
                state.instance_details = dict(snapshot.instance_details)
            return True

        self._update(apply)

    def add_panel(self, panel: Optional[Panel] = None) -> Panel:
        """Append ``panel``, or a new empty panel with one blank query."""
        if panel is None:
            panel = Panel(title=consts.DEFAULT_PANEL_TITLE, queries=[Query()])

        def apply(state: DashboardSnapshot) -> bool:
            state.panels.append(panel.model_copy(deep=True))
            return True

        self._update(apply)
        return panel

    def update_panel_from_file(self, panel_id: str, config: Union[Panel, Mapping]):
        """Replace title and queries of a panel, giving every query a new id."""
        if not isinstance(config, Panel):
            config = Panel.model_validate(config)

        def apply(state: DashboardSnapshot) -> bool:
            panel = state.get_panel(panel_id)
            if panel is None:
                return False
            panel.title = config.title
            panel.queries = [
                q.model_copy(update={"id": new_id()}, deep=True)
                for q in config.queries
            ]
            return True

        self._update(apply)

    def update_panel_title(self, panel_id: str, title: str):
        def apply(state: DashboardSnapshot) -> bool:
            panel = state.get_panel(panel_id)
            if panel is None or panel.title == title:
                return False
            panel.title = title
            return True

        self._update(apply)

    def delete_panel(self, panel_id: str):
        def apply(state: DashboardSnapshot) -> bool:
            remaining = [p for p in state.panels if p.id != panel_id]
            if len(remaining) == len(state.panels):
                return False
            state.panels = remaining
            return True

        self._update(apply)

    def add_query(self, panel_id: str) -> Optional[str]:
        """Append a blank query to a panel. Returns its id."""
        query = Query()

        def apply(state: DashboardSnapshot) -> bool:
            panel = state.get_panel(panel_id)
            if panel is None:
                return False
            panel.queries.append(query)
            return True

        if self._update(apply):
            return query.id
        return None

    def update_query(self, panel_id: str, query_id: str, query: str):
        def apply(target: Query) -> bool:
            if target.query == query:
                return False
            target.query = query
            return True

        self._update_query(panel_id, query_id, apply)

    def remove_query(self, panel_id: str, query_id: str):
        def apply(state: DashboardSnapshot) -> bool:
            panel = state.get_panel(panel_id)
            if panel is None:
                return False
            remaining = [q for q in panel.queries if q.id != query_id]
            if len(remaining) == len(panel.queries):
                return False
            panel.queries = remaining
            return True

        self._update(apply)

    def update_series_rename(
        self, panel_id: str, query_id: str, series_name: str, new_rename: str
    ):
        def apply(query: Query) -> bool:
            for alias in query.series:
                if alias.series_name == series_name:
                    if alias.series_rename == new_rename:
                        return False
                    alias.series_rename = new_rename
                    return True
            return False

        self._update_query(panel_id, query_id, apply)

    def update_query_units(self, panel_id: str, query_id: str, units: str):
        def apply(query: Query) -> bool:
            if query.units == units:
                return False
            query.units = units
            return True

        self._update_query(panel_id, query_id, apply)

    def update_query_resolution(self, panel_id: str, query_id: str, resolution: int):
        """Change a query's resolution.

        Raises:
            ValueError: If ``resolution`` is outside 0..3.
        """
        if not consts.MIN_RESOLUTION <= resolution <= consts.MAX_RESOLUTION:
            raise ValueError(
                f"resolution must be between {consts.MIN_RESOLUTION} and "
                f"{consts.MAX_RESOLUTION}, got {resolution}"
            )

        def apply(query: Query) -> bool:
            if query.resolution == resolution:
                return False
            query.resolution = resolution
            return True

        self._update_query(panel_id, query_id, apply)

    def set_series_for_query(
        self, panel_id: str, query_id: str, series_names: Iterable[str]
    ) -> bool:
        """Reconcile a query's aliases with the series names just observed.

        Aliases of names still observed are kept as they are, including any
        rename. Newly observed names get an alias named after themselves.
        Aliases of names no longer observed are dropped. Nothing is written
        if the result equals the current alias list.

        Returns:
            Whether the aliases changed.
        """
        unique_names = list(dict.fromkeys(series_names))

        def apply(query: Query) -> bool:
            existing = {}
            for alias in query.series:
                existing.setdefault(alias.series_name, alias)
            new_series = [
                existing.get(name) or SeriesAlias(series_name=name, series_rename=name)
                for name in unique_names
            ]
            unchanged = len(new_series) == len(query.series) and all(
                old.series_name == new.series_name
                and old.series_rename == new.series_rename
                for old, new in zip(query.series, new_series)
            )
            if unchanged:
                return False
            query.series = new_series
            return True

        return self._update_query(panel_id, query_id, apply)

    def reconcile_panel(self, panel_id: str, series: Sequence[FetchedSeries]):
        """Reconcile every query of a panel that has series in ``series``.

        Queries without fetched series keep their aliases. A query is only
        reconciled if its set of observed names differs from the stored one.
        """
        panel = self.get_panel(panel_id)
        if panel is None:
            return
        names_by_query: Dict[str, List[str]] = {}
        for s in series:
            names_by_query.setdefault(s.query_id, []).append(
                s.labels.get(METRIC_NAME_LABEL, "")
            )
        for query_id, names in names_by_query.items():
            query = panel.get_query(query_id)
            current = [alias.series_name for alias in query.series] if query else []
            if len(names) == len(current) and set(names) <= set(current):
                continue
            if self.set_series_for_query(panel_id, query_id, names):
                logger.debug(
                    f"Reconciled {len(names)} series of query {query_id} "
                    f"in panel {panel_id}."
                )

    def set_instance_details(
        self,
        compound_product_id: str,
        provisioned_compound_product_id: str,
        instance_id: str,
        details: Any,
    ):
        def apply(state: DashboardSnapshot) -> bool:
            products = state.instance_details.setdefault(compound_product_id, {})
            instances = products.setdefault(provisioned_compound_product_id, {})
            instances[instance_id] = {"details": details}
            return True

        self._update(apply)

    def get_instance_details(
        self,
        compound_product_id: str,
        provisioned_compound_product_id: str,
        instance_id: str,
    ) -> Optional[Any]:
        entry = (
            self._state.instance_details.get(compound_product_id, {})
            .get(provisioned_compound_product_id, {})
            .get(instance_id)
        )
        if not entry:
            return None
        return entry.get("details")

    def add_panel_from_templates(
        self,
        templates: Sequence[Any],
        product_id: Optional[str] = None,
        compound_product_id: Optional[str] = None,
        provisioned_compound_product_id: Optional[str] = None,
    ) -> Panel:
        """Merge the selected panel templates into one new panel.

        Titles are joined with " + " and descriptions with " | ". Every query
        gets a fresh id. The panel is tagged with the operating system of the
        instance when its details are known, else with ``product_id``.

        Args:
            templates: ``PanelTemplate`` instances, in selection order.
            product_id: The instance id, or the observability node sentinel.
            compound_product_id: Compound product the panel belongs to.
            provisioned_compound_product_id: Provisioned compound product,
                used to look up the instance details.
        """
        os_type = product_id
        if (
            compound_product_id
            and provisioned_compound_product_id
            and product_id
            and product_id != consts.NO_SPECIFIC_INSTANCE
        ):
            details = self.get_instance_details(
                compound_product_id, provisioned_compound_product_id, product_id
            )
            if isinstance(details, Mapping):
                os_type = details.get("os") or product_id

        names = []
        descriptions = []
        queries = []
        for template in templates:
            names.append(template.name)
            if template.description:
                descriptions.append(template.description)
            for query in template.config.queries:
                queries.append(query.model_copy(update={"id": new_id()}, deep=True))

        panel = Panel(
            title=" + ".join(names),
            queries=queries,
            description=" | ".join(descriptions),
            operating_system=os_type,
            compound_product_id=compound_product_id or DEFAULT_COMPOUND_PRODUCT_ID,
            instance_id=(
                product_id if product_id != consts.NO_SPECIFIC_INSTANCE else None
            ),
        )
        return self.add_panel(panel)


def filter_panels(
    panels: Sequence[Panel],
    product_id: Optional[str] = None,
    compound_product_id: Optional[str] = None,
) -> List[Panel]:
    """Panels to list for an instance (``product_id``) of a compound product.

    Without a product id every panel is listed. Panels without any scoping
    tag are always listed.
    """
    if not product_id:
        return list(panels)

    visible = []
    for panel in panels:
        if not (
            panel.operating_system or panel.compound_product_id or panel.instance_id
        ):
            visible.append(panel)
            continue
        matches_compound_product = (
            not panel.compound_product_id
            or panel.compound_product_id == compound_product_id
        )
        matches_instance = (
            panel.operating_system == product_id
            or panel.instance_id == product_id
            or not panel.operating_system
        )
        if matches_compound_product and matches_instance:
            visible.append(panel)
    return visible
