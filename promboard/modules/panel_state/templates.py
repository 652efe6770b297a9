import logging
import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from promboard.modules.panel_state.models import Query

logger = logging.getLogger(__name__)

PANEL_TEMPLATES_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "panel_templates.yaml"
)


class PanelTemplateConfig(BaseModel):
    title: str
    queries: List[Query] = Field(default_factory=list)


class PanelTemplate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Unique template id.")
    name: str = Field(..., description="Display name, used as panel title.")
    description: str = ""
    category: str = Field(..., description="Group shown in the template picker.")
    icon: str = ""
    operating_system: str = Field(..., alias="operatingSystem")
    config: PanelTemplateConfig


def load_panel_templates(path: Optional[str] = None) -> List[PanelTemplate]:
    """Load the template catalogue from a YAML file.

    Args:
        path: YAML file holding a list of templates. Defaults to the
            catalogue shipped with promboard.
    """
    path = path or PANEL_TEMPLATES_PATH
    with open(path) as f:
        raw = yaml.safe_load(f) or []
    templates = [PanelTemplate.model_validate(entry) for entry in raw]
    logger.debug(f"Loaded {len(templates)} panel templates from {path}.")
    return templates


class PanelTemplateCatalog:
    def __init__(self, templates: Optional[List[PanelTemplate]] = None):
        if templates is None:
            templates = load_panel_templates()
        self._templates = list(templates)

    def __iter__(self):
        return iter(self._templates)

    def __len__(self):
        return len(self._templates)

    def get(self, template_id: str) -> Optional[PanelTemplate]:
        for template in self._templates:
            if template.id == template_id:
                return template
        return None

    def by_category(self, category: str) -> List[PanelTemplate]:
        return [t for t in self._templates if t.category == category]

    def by_operating_system(self, operating_system: str) -> List[PanelTemplate]:
        return [t for t in self._templates if t.operating_system == operating_system]

    def categories(self) -> List[str]:
        """Distinct categories in catalogue order."""
        return list(dict.fromkeys(t.category for t in self._templates))
