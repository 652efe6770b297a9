#!/usr/bin/env python
import asyncio
from typing import List, Optional, Tuple

import click

from promboard import consts
from promboard._private.log import setup_logger
from promboard.exceptions import PanelValidationError
from promboard.modules.chart.chart_panel import ChartPanel
from promboard.modules.chart.aligner import legend_label
from promboard.modules.chart.csv_export import csv_file_name, series_to_csv
from promboard.modules.chart.formatting import format_with_units
from promboard.modules.panel_state.models import Query
from promboard.modules.panel_state.store import PanelStateStore, filter_panels
from promboard.modules.panel_state.templates import PanelTemplateCatalog
from promboard.modules.persistence.gateway import (
    DASHBOARD_FILE_NAME,
    PersistenceGateway,
    panel_file_name,
)
from promboard.modules.persistence.storage import JsonFileStorage
from promboard.modules.promql.rewriter import inject_instance_filter
from promboard.modules.range_query.client import RangeQueryClient
from promboard.modules.range_query.common import TimeRange
from promboard.modules.range_query.coordinator import RangeFetchCoordinator

ENDPOINT_HELP_STR = (
    "Base URL of the monitoring gateway. Can also be specified using the "
    f"{consts.MONITORING_ENDPOINT_ENV_VAR} environment variable."
)
STATE_DIR_HELP_STR = (
    "Directory holding the saved dashboard. Can also be specified using the "
    "PROMBOARD_STATE_DIR environment variable."
)


def _get_client(endpoint: Optional[str]) -> RangeQueryClient:
    return RangeQueryClient(endpoint)


def _get_gateway(state_dir: Optional[str]) -> PersistenceGateway:
    # The CLI exits right after a change, so saves are never throttled.
    return PersistenceGateway(JsonFileStorage(state_dir), throttle_s=0)


def _load_store(gateway: PersistenceGateway) -> PanelStateStore:
    return PanelStateStore(initial_state=gateway.load())


async def _fetch(
    endpoint: Optional[str],
    queries: List[Query],
    instance_id: Optional[str],
    time_range: TimeRange,
) -> ChartPanel:
    async with _get_client(endpoint) as client:
        chart = ChartPanel(
            RangeFetchCoordinator(client),
            queries=queries,
            instance_id=instance_id,
            time_range=time_range,
        )
        await chart.refresh()
    return chart


def _format_table(chart: ChartPanel) -> str:
    columns = chart.aligned_data()
    configs = chart.series_configs()
    lines = ["\t".join(["Time"] + [c.label for c in configs])]
    for i, timestamp in enumerate(columns[0]):
        row = [str(timestamp)]
        for config, column in zip(configs, columns[1:]):
            row.append(config.value_formatter(column[i]))
        lines.append("\t".join(row))
    return "\n".join(lines)


@click.group()
@click.option(
    "--logging-level",
    type=str,
    default=consts.LOGGING_LEVEL,
    show_default=True,
    help="Logging level of promboard, e.g. DEBUG or WARNING.",
)
def main(logging_level: str):
    """Query, chart and manage Prometheus dashboard panels."""
    setup_logger(logging_level, consts.LOGGING_FORMAT)


@main.command()
@click.argument("query", type=str)
@click.option(
    "--instance",
    "instance_id",
    type=str,
    required=True,
    help="Instance id to add as an instance label filter.",
)
def rewrite(query: str, instance_id: str):
    """Print QUERY with every metric selector scoped to an instance."""
    click.echo(inject_instance_filter(query, instance_id))


@main.command()
@click.argument("queries", nargs=-1, required=True, type=str)
@click.option("--endpoint", type=str, default=None, help=ENDPOINT_HELP_STR)
@click.option(
    "--instance",
    "instance_id",
    type=str,
    default=None,
    help="Scope every query to this instance.",
)
@click.option(
    "--minutes",
    type=click.IntRange(min=1),
    default=consts.DEFAULT_RANGE_MINUTES,
    show_default=True,
    help="Length of the window ending now.",
)
@click.option(
    "--step",
    type=str,
    default=consts.DEFAULT_STEP,
    show_default=True,
    help="Resolution step of the range query, e.g. 15s.",
)
@click.option("--units", type=str, default="", help="Units of the values.")
@click.option(
    "--resolution",
    type=click.IntRange(consts.MIN_RESOLUTION, consts.MAX_RESOLUTION),
    default=consts.DEFAULT_RESOLUTION,
    show_default=True,
    help="Decimal places of the formatted values.",
)
@click.option(
    "--csv",
    "as_csv",
    is_flag=True,
    default=False,
    help="Print raw values as CSV instead of a formatted table.",
)
@click.option(
    "--save",
    is_flag=True,
    default=False,
    help="Write the CSV to a file named after --title instead of printing it.",
)
@click.option("--title", type=str, default="", help="Title of the chart.")
@click.option(
    "--labels",
    "show_labels",
    is_flag=True,
    default=False,
    help="Print the full label set of every series after the table.",
)
def query(
    queries: Tuple[str],
    endpoint: Optional[str],
    instance_id: Optional[str],
    minutes: int,
    step: str,
    units: str,
    resolution: int,
    as_csv: bool,
    save: bool,
    title: str,
    show_labels: bool,
):
    """Fetch one or more range QUERIES and print the series."""
    query_models = [
        Query(id=str(i), query=q, units=units, resolution=resolution)
        for i, q in enumerate(queries)
    ]
    chart = asyncio.run(
        _fetch(
            endpoint,
            query_models,
            instance_id,
            TimeRange(minutes=minutes, step=step),
        )
    )
    state = chart.state
    if state.error is not None:
        details = "; ".join(
            f"{queries[int(query_id)]}: {message}"
            for query_id, message in state.query_errors.items()
        )
        raise click.ClickException(f"{state.error} {details}".strip())
    if not state.data:
        click.echo("No data.")
        return

    if save:
        path = csv_file_name(title)
        with open(path, "w") as f:
            f.write(series_to_csv(state.data, query_models) + "\n")
        click.echo(f"Wrote {len(state.data)} series to {path}.")
    elif as_csv:
        click.echo(series_to_csv(state.data, query_models))
    else:
        click.echo(_format_table(chart))
        if show_labels:
            click.echo("")
            for config, series in zip(chart.series_configs(), state.data):
                click.echo(f"{config.label}\t{legend_label(series.labels)}")


@main.command()
@click.option("--os", "operating_system", type=str, default=None)
@click.option("--category", type=str, default=None)
def templates(operating_system: Optional[str], category: Optional[str]):
    """List the panel templates."""
    catalog = PanelTemplateCatalog()
    for template in catalog:
        if operating_system and template.operating_system != operating_system:
            continue
        if category and template.category != category:
            continue
        click.echo(
            f"{template.id}\t{template.category}\t{template.operating_system}\t"
            f"{template.name}"
        )


@main.command("list-panels")
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
@click.option(
    "--product-id",
    type=str,
    default=None,
    help="Only list panels shown for this instance or operating system.",
)
@click.option("--compound-product-id", type=str, default=None)
def list_panels(
    state_dir: Optional[str],
    product_id: Optional[str],
    compound_product_id: Optional[str],
):
    """List the panels of the saved dashboard."""
    store = _load_store(_get_gateway(state_dir))
    for panel in filter_panels(store.panels, product_id, compound_product_id):
        click.echo(f"{panel.id}\t{panel.title}\t{len(panel.queries)} queries")


@main.command("add-template")
@click.argument("template_ids", nargs=-1, required=True, type=str)
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
@click.option(
    "--product-id", type=str, default=consts.NO_SPECIFIC_INSTANCE, show_default=True
)
@click.option("--compound-product-id", type=str, default=None)
@click.option("--provisioned-compound-product-id", type=str, default=None)
def add_template(
    template_ids: Tuple[str],
    state_dir: Optional[str],
    product_id: str,
    compound_product_id: Optional[str],
    provisioned_compound_product_id: Optional[str],
):
    """Add one panel built from the templates TEMPLATE_IDS."""
    catalog = PanelTemplateCatalog()
    selected = []
    for template_id in template_ids:
        template = catalog.get(template_id)
        if template is None:
            raise click.ClickException(f"Unknown template '{template_id}'.")
        selected.append(template)

    gateway = _get_gateway(state_dir)
    store = _load_store(gateway)
    gateway.attach(store)
    panel = store.add_panel_from_templates(
        selected, product_id, compound_product_id, provisioned_compound_product_id
    )
    click.echo(f"Added panel '{panel.title}' with id {panel.id}.")


@main.command("export-panel")
@click.argument("panel_id", type=str)
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="File to write. Defaults to <title>-config.json.",
)
def export_panel(panel_id: str, state_dir: Optional[str], output: Optional[str]):
    """Write the configuration of panel PANEL_ID to a file."""
    gateway = _get_gateway(state_dir)
    panel = _load_store(gateway).get_panel(panel_id)
    if panel is None:
        raise click.ClickException(f"Panel '{panel_id}' not found.")
    output = output or panel_file_name(panel)
    with open(output, "w") as f:
        f.write(gateway.export_panel(panel))
    click.echo(f"Wrote panel '{panel.title}' to {output}.")


@main.command("import-panel")
@click.argument("config_file", type=click.File("r"))
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
@click.option(
    "--panel-id",
    type=str,
    default=None,
    help="Replace title and queries of this panel instead of adding one.",
)
def import_panel(config_file, state_dir: Optional[str], panel_id: Optional[str]):
    """Import a panel configuration file written by export-panel."""
    gateway = _get_gateway(state_dir)
    store = _load_store(gateway)
    if panel_id is not None and store.get_panel(panel_id) is None:
        raise click.ClickException(f"Panel '{panel_id}' not found.")
    gateway.attach(store)
    try:
        panel = gateway.import_panel_into(store, config_file.read(), panel_id)
    except PanelValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"Imported panel '{panel.title}'.")


@main.command("export-dashboard")
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=DASHBOARD_FILE_NAME,
    show_default=True,
)
def export_dashboard(state_dir: Optional[str], output: str):
    """Write all panels and instance details to a file."""
    gateway = _get_gateway(state_dir)
    store = _load_store(gateway)
    with open(output, "w") as f:
        f.write(gateway.export_dashboard(store.state))
    click.echo(f"Wrote {len(store.panels)} panels to {output}.")


@main.command("import-dashboard")
@click.argument("config_file", type=click.File("r"))
@click.option("--state-dir", type=str, default=None, help=STATE_DIR_HELP_STR)
def import_dashboard(config_file, state_dir: Optional[str]):
    """Replace the saved dashboard with a file written by export-dashboard."""
    gateway = _get_gateway(state_dir)
    store = _load_store(gateway)
    gateway.attach(store)
    try:
        snapshot = gateway.import_dashboard_into(store, config_file.read())
    except PanelValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"Imported {len(snapshot.panels)} panels.")


@main.command("format")
@click.argument("values", nargs=-1, required=True, type=float)
@click.option(
    "--resolution",
    type=click.IntRange(consts.MIN_RESOLUTION, consts.MAX_RESOLUTION),
    default=consts.DEFAULT_RESOLUTION,
    show_default=True,
)
@click.option("--units", type=str, default="")
def format_values(values: Tuple[float], resolution: int, units: str):
    """Format VALUES the way chart tooltips show them."""
    for value in values:
        click.echo(format_with_units(value, resolution, units))


if __name__ == "__main__":
    main()
