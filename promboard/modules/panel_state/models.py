import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from promboard import consts


def new_id() -> str:
    return str(uuid.uuid4())


class SeriesAlias(BaseModel):
    series_name: str = Field(
        ...,
        description=(
            "Canonical name of the series. The empty string is a placeholder "
            "that matches any series of the query."
        ),
    )
    series_rename: str = Field(
        ..., description="Display label. Defaults to series_name."
    )

    @model_validator(mode="before")
    @classmethod
    def _default_rename(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("series_rename") is None:
            data = dict(data)
            data["series_rename"] = data.get("series_name", "")
        return data


class Query(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_id, description="Immutable query id.")
    query: str = Field("", description="PromQL text. May be empty.")
    series: List[SeriesAlias] = Field(
        default_factory=list, description="One alias per observed series name."
    )
    units: str = Field("", description="Suffix appended to formatted values.")
    resolution: int = Field(
        consts.DEFAULT_RESOLUTION,
        ge=consts.MIN_RESOLUTION,
        le=consts.MAX_RESOLUTION,
        description="Decimal places of formatted values.",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Files written by other tools use null for "unset".
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("series")
    @classmethod
    def _unique_series_names(cls, series: List[SeriesAlias]) -> List[SeriesAlias]:
        seen = set()
        for alias in series:
            if alias.series_name in seen:
                raise ValueError(f"duplicate series_name '{alias.series_name}'")
            seen.add(alias.series_name)
        return series


class Panel(BaseModel):
    """A dashboard tile holding one or more queries.

    The scoping tags only decide in which context the panel is listed, see
    :func:`promboard.modules.panel_state.store.filter_panels`.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str = Field(consts.DEFAULT_PANEL_TITLE)
    queries: List[Query] = Field(default_factory=list)
    description: Optional[str] = None
    operating_system: Optional[str] = Field(None, alias="operatingSystem")
    compound_product_id: Optional[str] = Field(None, alias="compoundProductId")
    instance_id: Optional[str] = Field(None, alias="instanceId")

    def get_query(self, query_id: str) -> Optional[Query]:
        for query in self.queries:
            if query.id == query_id:
                return query
        return None

    def to_dict(self, include_id: bool = True) -> Dict[str, Any]:
        exclude = None if include_id else {"id"}
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)


class DashboardSnapshot(BaseModel):
    """Everything that is persisted: the panels and the instance details.

    ``instance_details`` maps compound product id -> provisioned compound
    product id -> instance id -> ``{"details": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    panels: List[Panel] = Field(default_factory=list)
    instance_details: Dict[str, Any] = Field(
        default_factory=dict, alias="instanceDetails"
    )

    def get_panel(self, panel_id: str) -> Optional[Panel]:
        for panel in self.panels:
            if panel.id == panel_id:
                return panel
        return None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def default_dashboard_panels() -> List[Panel]:
    """Panels of a dashboard that has never been saved."""
    return [
        Panel(
            id="Prometheus-Query-Rate",
            title="Prometheus Query Rate",
            operating_system=consts.NO_SPECIFIC_INSTANCE,
            queries=[
                Query(
                    query="rate(prometheus_http_requests_total[5m])",
                    units="req/s",
                )
            ],
        ),
        Panel(
            id="Scrape-Duration",
            title="Scrape Duration",
            operating_system=consts.NO_SPECIFIC_INSTANCE,
            queries=[
                Query(query="prometheus_target_interval_length_seconds", units="s")
            ],
        ),
    ]
