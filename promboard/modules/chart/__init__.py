from promboard.modules.chart.aligner import (
    PALETTE,
    SeriesConfig,
    align,
    build_series_configs,
    color_for_index,
    legend_label,
)
from promboard.modules.chart.chart_panel import ChartPanel, Tooltip, normalize_queries
from promboard.modules.chart.csv_export import series_to_csv
from promboard.modules.chart.formatting import format_scientific, hex_to_rgba

__all__ = [
    "PALETTE",
    "SeriesConfig",
    "align",
    "build_series_configs",
    "color_for_index",
    "legend_label",
    "ChartPanel",
    "Tooltip",
    "normalize_queries",
    "series_to_csv",
    "format_scientific",
    "hex_to_rgba",
]
