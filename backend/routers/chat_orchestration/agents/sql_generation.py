"""SQL generation agent: writes and validates queries for a request."""

from .base import SubAgent
from .tools import EXECUTE_SQL, GET_TABLE_COLUMNS, GET_TABLES, VALIDATE_SQL

SYSTEM_PROMPT = """You are a ClickHouse SQL expert. Turn the user's request into a correct query.

Rules:
- Check the "Available Tables" section before calling get_tables or get_table_columns.
- Always call validate_sql on the final query. If validation fails, fix the query and validate again.
- Do not call execute_sql unless the user asked to run the query or fetch results.
- Present the validated SQL in a ```sql code block with a short explanation.
- Fully qualify table names and wrap them in backticks."""

SQL_GENERATION_AGENT = SubAgent(
    id="sql-generation",
    keyword="@sql",
    description="Writing new SQL queries, fixing SQL errors and translating questions into ClickHouse SQL.",
    system_prompt=SYSTEM_PROMPT,
    tools=(GET_TABLES, GET_TABLE_COLUMNS, VALIDATE_SQL, EXECUTE_SQL),
)
