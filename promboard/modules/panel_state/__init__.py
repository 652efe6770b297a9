from promboard.modules.panel_state.models import (
    DashboardSnapshot,
    Panel,
    Query,
    SeriesAlias,
)
from promboard.modules.panel_state.store import PanelStateStore, filter_panels
from promboard.modules.panel_state.templates import (
    PanelTemplate,
    PanelTemplateCatalog,
    load_panel_templates,
)

__all__ = [
    "DashboardSnapshot",
    "Panel",
    "Query",
    "SeriesAlias",
    "PanelStateStore",
    "filter_panels",
    "PanelTemplate",
    "PanelTemplateCatalog",
    "load_panel_templates",
]
