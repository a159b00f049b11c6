"""Visualization agent: charts query results."""

import re

from .base import SubAgent
from .tools import GENERATE_VISUALIZATION, GET_TABLE_COLUMNS, GET_TABLES, VALIDATE_SQL

SYSTEM_PROMPT = """You build charts for ClickHouse data.

Workflow:
a) If schema information is needed, check "Available Tables" first, then get_table_columns or get_tables.
b) Use SQL from the context or write it yourself.
c) Call validate_sql with the SQL. This is mandatory.
d) After validation passes, call generate_visualization with the validated SQL.

Do not describe the chart in text after generate_visualization; the console renders it."""

HEURISTICS = re.compile(r"\b(visualize|chart|graph|plot|pie|bar|line|histogram|scatter)\b", re.IGNORECASE)

VISUALIZATION_AGENT = SubAgent(
    id="visualization",
    keyword="@visualizer",
    description="Charts, graphs and plots of query results (line, bar, pie, time series).",
    system_prompt=SYSTEM_PROMPT,
    heuristics=HEURISTICS,
    tools=(GET_TABLES, GET_TABLE_COLUMNS, VALIDATE_SQL, GENERATE_VISUALIZATION),
)
