from typing import Optional

from ..models.models import ChartConfig, ChartSuggestion, ChartType, Dataset

DEFAULT_LINE_COLOR = "#3b82f6"
DEFAULT_BAR_COLOR = "#10b981"
AI_CHART_COLOR = "#ec4899"
AI_CHART_TITLE = "AI Generated Chart"


def suggest_default_chart(dataset: Dataset) -> Optional[ChartConfig]:
    """
    Starting chart for a freshly loaded dataset.

    Two or more numeric columns give a line chart of the second against the
    first; a single numeric column with a categorical one gives a bar chart.
    Anything else gets no default chart.

    Args:
        dataset: Newly ingested dataset

    Returns:
        ChartConfig or None
    """
    numeric = dataset.numeric_columns
    categorical = dataset.categorical_columns

    if len(numeric) >= 2:
        return ChartConfig(
            type=ChartType.LINE,
            x_axis_key=numeric[0],
            y_axis_key=numeric[1],
            color=DEFAULT_LINE_COLOR,
            title=f"{numeric[1]} vs {numeric[0]}"
        )
    if len(numeric) == 1 and categorical:
        return ChartConfig(
            type=ChartType.BAR,
            x_axis_key=categorical[0],
            y_axis_key=numeric[0],
            color=DEFAULT_BAR_COLOR,
            title=f"{numeric[0]} by {categorical[0]}"
        )
    return None


def chart_from_suggestion(suggestion: ChartSuggestion) -> ChartConfig:
    """Turn a suggested chart into a dashboard chart with a fresh id."""
    return ChartConfig(
        type=suggestion.type,
        x_axis_key=suggestion.x_axis_key,
        y_axis_key=suggestion.y_axis_key,
        title=suggestion.title or AI_CHART_TITLE,
        color=suggestion.color or AI_CHART_COLOR
    )
