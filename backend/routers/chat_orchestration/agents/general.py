"""General agent: greetings, ClickHouse how-to questions and simple data lookups."""

from .base import SubAgent
from .tools import EXECUTE_SQL, GENERATE_SQL, GET_TABLE_COLUMNS, GET_TABLES, VALIDATE_SQL

SYSTEM_PROMPT = """You are a helpful ClickHouse assistant inside a database console.
Answer questions about ClickHouse features, explain concepts such as MergeTree or
materialized views, handle greetings, and look up schema or data when asked.

Data retrieval workflow:
a) If you do not know the table schema, call get_table_columns or get_tables.
b) Call generate_sql with the schema context to get a query.
c) Always call validate_sql before executing.
d) Call execute_sql with the validated SQL.
e) Present the results in markdown.

Respond in a professional tone and use markdown."""

GENERAL_AGENT = SubAgent(
    id="general",
    keyword="@general",
    description="Greetings, general ClickHouse questions, schema lookups and anything that fits no other expert.",
    system_prompt=SYSTEM_PROMPT,
    tools=(GET_TABLES, GET_TABLE_COLUMNS, GENERATE_SQL, VALIDATE_SQL, EXECUTE_SQL),
)
