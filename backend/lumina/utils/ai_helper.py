"""
AI Helper module for dataset chat and insights.

Questions go to a hosted text-generation model when a token is configured.
Without one, answers are computed locally from the analytics engine.
"""
import re
import json
import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

import requests
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from .. import config
from ..models.models import (
    AIInsight, ChartConfig, ChartSuggestion, ChartType, ChatMessage, ChatResponse, Dataset
)
from .helpers import suggest_default_chart
from .statistics import calculate_correlations, calculate_numeric_summary, get_histogram_data, numeric_values

logger = logging.getLogger(__name__)

FALLBACK_CHAT_TEXT = "I'm having trouble connecting to the analysis engine right now."
EMPTY_CHAT_TEXT = "I couldn't process that request."
STRONG_CORRELATION = 0.7

CHART_BLOCK = re.compile(r"```json\s*(\{[\s\S]*?\})\s*```")
FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class ReasoningServiceError(Exception):
    """The reasoning service could not be reached or returned an unusable payload."""


def unavailable_insight() -> AIInsight:
    return AIInsight(
        summary="Analysis unavailable.",
        trends=[],
        anomalies=[],
        recommendation="Check API configuration."
    )


def _parse_chart_payload(payload: str) -> Optional[ChartSuggestion]:
    try:
        parsed = json.loads(payload)
        if not isinstance(parsed, dict) or "chartConfig" not in parsed:
            return None
        return ChartSuggestion.model_validate(parsed["chartConfig"])
    except (ValueError, ValidationError) as e:
        logger.warning(f"Failed to parse chart config from AI response: {str(e)}")
        return None


def extract_chart_suggestion(text: str) -> Tuple[str, Optional[ChartSuggestion]]:
    """
    Split a model answer into display text and an optional chart suggestion.

    The suggestion is expected in a fenced ```json block holding
    ``{"chartConfig": {...}}``. Without a fence, the outermost brace span is
    tried instead. The text is left untouched unless a valid suggestion is found.

    Args:
        text: Raw model answer

    Returns:
        Tuple of (display_text, suggestion or None)
    """
    match = CHART_BLOCK.search(text)
    if match:
        suggestion = _parse_chart_payload(match.group(1))
        if suggestion is not None:
            return text.replace(match.group(0), "").strip(), suggestion
        return text, None

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace > -1 and last_brace > first_brace:
        suggestion = _parse_chart_payload(text[first_brace:last_brace + 1])
        if suggestion is not None:
            return text[:first_brace].strip(), suggestion

    return text, None


def _mentioned_columns(question: str, columns: Sequence[str]) -> List[str]:
    """Columns named in the question, in the order they appear."""
    lowered = question.lower()
    found = [(lowered.find(col.lower()), col) for col in columns if col and col.lower() in lowered]
    return [col for _, col in sorted(found)]


class AIHelper:
    """
    AI Helper class for dataset chat and insights.
    """
    def __init__(
        self,
        api_token: Optional[str] = None,
        model_name: str = config.REASONING_MODEL,
        api_url: str = config.REASONING_API_URL,
        timeout: float = config.REASONING_TIMEOUT_SECONDS
    ):
        """
        Initialize the AI Helper.

        Args:
            api_token: Inference API token; None answers offline
            model_name: Hosted model identifier
            api_url: Endpoint prefix the model name is appended to
            timeout: Seconds to wait for the service
        """
        self.api_token = api_token
        self.model_name = model_name
        self.api_url = f"{api_url.rstrip('/')}/{model_name}"
        self.headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self.timeout = timeout
        mode = f"model {model_name}" if self.online else "local answers (no API token)"
        logger.info(f"Initialized AIHelper with {mode}")

    @property
    def online(self) -> bool:
        return bool(self.api_token)

    def generate_text(self, prompt: str, max_new_tokens: int = 512) -> str:
        """
        Use the Hugging Face Inference API to generate text remotely.

        Raises:
            ReasoningServiceError: On transport errors or unexpected payloads
        """
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": max_new_tokens,
                "temperature": 0.3,
                "top_p": 0.9,
                "return_full_text": False
            }
        }

        try:
            response = requests.post(self.api_url, headers=self.headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            raise ReasoningServiceError(f"Error calling inference API: {str(e)}") from e
        except ValueError as e:
            raise ReasoningServiceError(f"Error parsing API response: {str(e)}") from e

        # Handle different response formats
        if isinstance(result, list) and result:
            first = result[0]
            if isinstance(first, dict) and "generated_text" in first:
                return str(first["generated_text"])
            if isinstance(first, str):
                return first
        elif isinstance(result, dict):
            if "generated_text" in result:
                return str(result["generated_text"])
            if "text" in result:
                return str(result["text"])
        raise ReasoningServiceError("Unexpected response format")

    def build_chat_prompt(
        self,
        dataset: Dataset,
        message: str,
        history: Sequence[ChatMessage] = (),
        charts: Sequence[ChartConfig] = ()
    ) -> str:
        """Dataset context, recent conversation and the chart block contract."""
        rows = dataset.rows
        sample_data = json.dumps(rows[:config.CHAT_SAMPLE_ROWS], default=str)
        columns = ", ".join(dataset.columns)
        existing_charts = ", ".join(f"{c.title} ({c.type.value})" for c in charts)
        turns = list(history)[-config.CHAT_HISTORY_TURNS:] if config.CHAT_HISTORY_TURNS > 0 else []
        previous_turns = "\n".join(
            f"{'User' if msg.role == 'user' else 'Model'}: {msg.content}" for msg in turns
        )
        chart_types = " | ".join(f'"{t.value}"' for t in ChartType)

        return f"""You are Lumina, an expert data analyst assistant.
Dataset Context:
- Name: {dataset.name}
- Columns: {columns}
- Existing Charts: {existing_charts}
- Sample Data: {sample_data}

Your Goal: Answer user questions about the data, suggest insights, and help visualize data.

IMPORTANT: If the user asks to visualize data or create a chart, you MUST include exactly one JSON block at the END of your response with this schema:
```json
{{
  "chartConfig": {{
    "type": {chart_types},
    "xAxisKey": "column_name",
    "yAxisKey": "column_name",
    "title": "Chart Title",
    "color": "#hexcode"
  }}
}}
```
If no chart is needed, do not include the JSON block.
Keep responses concise and professional. Markdown is supported.

Conversation History:
{previous_turns}

User: {message}
Model:"""

    def chat_with_data(
        self,
        dataset: Dataset,
        message: str,
        history: Sequence[ChatMessage] = (),
        charts: Sequence[ChartConfig] = ()
    ) -> ChatResponse:
        """
        Answer a question about a dataset.

        Args:
            dataset: Dataset the question is about
            message: The user's question
            history: Earlier messages, oldest first
            charts: Charts currently on the dashboard

        Returns:
            ChatResponse with display text and an optional chart suggestion
        """
        if not self.online:
            return self._generate_default_chat_response(dataset, message)

        try:
            text = self.generate_text(self.build_chat_prompt(dataset, message, history, charts))
        except ReasoningServiceError as e:
            logger.error(f"Chat error: {str(e)}")
            return ChatResponse(content=FALLBACK_CHAT_TEXT)

        text = text.strip() or EMPTY_CHAT_TEXT
        content, suggested_chart = extract_chart_suggestion(text)
        return ChatResponse(content=content, suggested_chart=suggested_chart)

    async def achat(
        self,
        dataset: Dataset,
        message: str,
        history: Sequence[ChatMessage] = (),
        charts: Sequence[ChartConfig] = ()
    ) -> ChatResponse:
        """Run chat_with_data off the event loop, giving up after the timeout."""
        try:
            return await asyncio.wait_for(
                run_in_threadpool(self.chat_with_data, dataset, message, history, charts),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Chat timed out after {self.timeout}s")
            return ChatResponse(content=FALLBACK_CHAT_TEXT)

    def analyze_dataset(self, dataset: Dataset) -> AIInsight:
        """
        Summarise a dataset with trends, anomalies and a chart recommendation.

        Args:
            dataset: The dataset to analyze

        Returns:
            AIInsight, or the "Analysis unavailable." insight when the service fails
        """
        if not self.online:
            return self._generate_default_insight(dataset)

        sample_data = json.dumps(dataset.rows[:config.INSIGHT_SAMPLE_ROWS], default=str)
        prompt = f"""Act as a senior data analyst. Dataset: "{dataset.name}".
Columns: {', '.join(dataset.columns)}.
Sample Data (JSON): {sample_data}

Provide a JSON object with:
1. "summary": Brief description.
2. "trends": Array of 3 trends.
3. "anomalies": Array of potential outliers.
4. "recommendation": Best chart type suggestion.

Return raw JSON only."""

        try:
            text = self.generate_text(prompt)
            return AIInsight.model_validate(json.loads(FENCE.sub("", text.strip())))
        except (ReasoningServiceError, ValueError, ValidationError) as e:
            logger.error(f"Analysis error: {str(e)}")
            return unavailable_insight()

    async def aanalyze(self, dataset: Dataset) -> AIInsight:
        try:
            return await asyncio.wait_for(
                run_in_threadpool(self.analyze_dataset, dataset),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Analysis timed out after {self.timeout}s")
            return unavailable_insight()

    def _generate_default_insight(self, dataset: Dataset) -> AIInsight:
        rows = dataset.rows
        summaries = calculate_numeric_summary(dataset, rows)
        correlations = calculate_correlations(dataset, rows)

        summary = (
            f"Dataset '{dataset.name}' with {len(rows)} rows and {len(dataset.columns)} columns. "
            f"Contains {len(dataset.numeric_columns)} numeric and "
            f"{len(dataset.categorical_columns)} categorical columns."
        )

        trends = []
        for result in sorted(correlations, key=lambda r: abs(r.correlation), reverse=True):
            if abs(result.correlation) < STRONG_CORRELATION:
                break
            direction = "rise together" if result.correlation > 0 else "move in opposite directions"
            trends.append(f"{result.col1} and {result.col2} {direction} (r={result.correlation:.2f})")

        # drift between the first and second half of the rows
        half = len(rows) // 2
        if half > 0:
            for col in dataset.numeric_columns:
                early = numeric_values(rows[:half], col)
                late = numeric_values(rows[half:], col)
                if early.empty or late.empty or early.mean() == 0:
                    continue
                change = (late.mean() - early.mean()) / abs(early.mean())
                if abs(change) >= 0.1:
                    word = "increases" if change > 0 else "decreases"
                    trends.append(f"{col} {word} by {abs(change) * 100:.0f}% from the first to the second half of the rows")

        anomalies = []
        for s in summaries:
            if s.null_count == len(rows):
                continue
            spread = s.q3 - s.q1
            low, high = s.q1 - 1.5 * spread, s.q3 + 1.5 * spread
            values = numeric_values(rows, s.column)
            outliers = int(((values < low) | (values > high)).sum())
            if outliers:
                anomalies.append(f"{s.column}: {outliers} value(s) outside [{low:.2f}, {high:.2f}]")

        chart = suggest_default_chart(dataset)
        if chart is not None:
            recommendation = f"{chart.type.value} chart: {chart.title}"
        else:
            recommendation = "Table view; there are too few numeric columns for a chart."

        return AIInsight(summary=summary, trends=trends[:3], anomalies=anomalies, recommendation=recommendation)

    def _generate_default_chat_response(self, dataset: Dataset, question: str) -> ChatResponse:
        """
        Keyword-driven answer computed from the dataset itself.

        Args:
            dataset: The dataset
            question: The user's question

        Returns:
            ChatResponse
        """
        question_lower = question.lower()
        rows = dataset.rows
        numeric = list(dataset.numeric_columns)
        mentioned = _mentioned_columns(question, dataset.columns)
        mentioned_numeric = [col for col in mentioned if col in numeric]

        # Chart requests
        if any(keyword in question_lower for keyword in ["chart", "plot", "visualize", "visualise", "graph"]):
            chart_type = next((t for t in ChartType if t.value.lower() in question_lower), None)
            if len(mentioned) >= 2:
                x_key, y_key = mentioned[0], mentioned[1]
            else:
                default = suggest_default_chart(dataset)
                if default is None:
                    return ChatResponse(content="I need at least one numeric column to build a chart for this dataset.")
                x_key, y_key = default.x_axis_key, default.y_axis_key
                chart_type = chart_type or default.type
            chart_type = chart_type or ChartType.LINE
            suggestion = ChartSuggestion(
                type=chart_type,
                x_axis_key=x_key,
                y_axis_key=y_key,
                title=f"{y_key} vs {x_key}"
            )
            return ChatResponse(
                content=f"Here is a {chart_type.value.lower()} chart of {y_key} against {x_key}.",
                suggested_chart=suggestion
            )

        # Basic dataset information
        if any(keyword in question_lower for keyword in ["overview", "summary", "describe", "what is this dataset", "tell me about"]):
            lines = [
                f"This dataset contains {len(rows)} rows and {len(dataset.columns)} columns.",
                f"It has {len(numeric)} numeric columns and {len(dataset.categorical_columns)} categorical columns.",
                f"The columns are: {', '.join(dataset.columns)}."
            ]
            summaries = [s for s in calculate_numeric_summary(dataset, rows) if s.null_count < len(rows)]
            if summaries:
                lines.append("")
                lines.append("Numeric columns summary:")
                for s in summaries[:5]:
                    lines.append(f"- {s.column}: min={s.min:.2f}, max={s.max:.2f}, mean={s.mean:.2f}, median={s.median:.2f}")
            return ChatResponse(content="\n".join(lines))

        # Missing values
        if any(keyword in question_lower for keyword in ["missing", "null", "empty"]):
            missing = [
                (col, sum(1 for row in rows if row.get(col) is None))
                for col in dataset.columns
            ]
            missing = [(col, count) for col, count in missing if count > 0]
            if not missing:
                return ChatResponse(content="Good news! There are no missing values in this dataset.")
            details = "\n".join(
                f"- {col}: {count} missing values ({count / len(rows) * 100:.1f}%)" for col, count in missing[:10]
            )
            return ChatResponse(content=f"There are missing values in {len(missing)} columns:\n\n{details}")

        # Correlations
        if any(keyword in question_lower for keyword in ["correlation", "correlate", "relationship", "related"]):
            if len(numeric) < 2:
                return ChatResponse(content="There are not enough numeric columns in this dataset to calculate correlations.")
            correlations = calculate_correlations(dataset, rows)
            if not correlations:
                return ChatResponse(content="There are too few rows with paired numeric values to calculate reliable correlations.")

            if mentioned_numeric:
                selected = [r for r in correlations if r.col1 in mentioned_numeric or r.col2 in mentioned_numeric]
                header = "Here are the correlations for the columns you mentioned:"
            else:
                selected = [r for r in correlations if abs(r.correlation) > STRONG_CORRELATION]
                header = "I found some strong correlations in your dataset:"
            if not selected:
                return ChatResponse(content="I didn't find any particularly strong correlations between the numeric columns in your dataset.")

            selected.sort(key=lambda r: abs(r.correlation), reverse=True)
            corr_text = "\n".join(f"- {r.col1} and {r.col2}: {r.correlation:.2f}" for r in selected[:5])
            return ChatResponse(content=(
                f"{header}\n\n{corr_text}\n\n"
                "A value close to 1 indicates a strong positive correlation, "
                "while a value close to -1 indicates a strong negative correlation."
            ))

        # Distribution
        if any(keyword in question_lower for keyword in ["histogram", "distribution", "spread"]):
            if not numeric:
                return ChatResponse(content="There are no numeric columns in this dataset to describe a distribution.")
            column = mentioned_numeric[0] if mentioned_numeric else numeric[0]
            buckets = get_histogram_data(dataset, column, config.DEFAULT_HISTOGRAM_BINS, rows)
            if not buckets:
                return ChatResponse(content=f"{column} has no numeric values to bin.")
            bucket_text = "\n".join(f"- {b.range_label}: {b.count}" for b in buckets)
            return ChatResponse(content=f"Distribution of {column}:\n\n{bucket_text}")

        # Statistical analysis
        if any(keyword in question_lower for keyword in ["statistics", "statistical", "stats", "average", "mean", "median"]):
            summaries = calculate_numeric_summary(dataset, rows)
            if mentioned_numeric:
                summaries = [s for s in summaries if s.column in mentioned_numeric]
            if not summaries:
                return ChatResponse(content="There are no numeric columns in this dataset to provide statistical summaries.")
            blocks = []
            for s in summaries[:5]:
                blocks.append("\n".join([
                    f"{s.column}:",
                    f"- Count: {len(rows) - s.null_count}",
                    f"- Mean: {s.mean:.2f}",
                    f"- Median: {s.median:.2f}",
                    f"- Std Dev: {s.std_dev:.2f}",
                    f"- Min: {s.min:.2f}",
                    f"- Max: {s.max:.2f}",
                    f"- 25th Percentile: {s.q1:.2f}",
                    f"- 75th Percentile: {s.q3:.2f}"
                ]))
            return ChatResponse(content="Here are the statistical summaries for the numeric columns:\n\n" + "\n\n".join(blocks))

        # Default response
        more = " and more" if len(dataset.columns) > 5 else ""
        return ChatResponse(content=(
            f"I'm analyzing your dataset with {len(rows)} rows and {len(dataset.columns)} columns.\n\n"
            f"Your dataset contains columns: {', '.join(dataset.columns[:5])}{more}.\n\n"
            "Try asking about:\n"
            "- Dataset overview or summary\n"
            "- Missing values\n"
            "- Correlations between numeric columns\n"
            "- Statistics or the distribution of a column\n"
            "- A chart of one column against another"
        ))
