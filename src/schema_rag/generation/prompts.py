"""Prompt templates for the agent, chat and report modes."""

from __future__ import annotations

from langchain_core.prompts import PromptTemplate

_SCHEMA_FORMAT = """
{{
  "TABLES": {{
    "table_name": {{
      "COLUMNS": {{
        "column_name": {{
          "TYPE": "data_type",
          "NULLABLE": true/false,
          "UNIQUE": true/false,
          "DEFAULT": "default_value",
          "CHECKS": [],
          "IS_PRIMARY": true/false,
          "IS_INDEX": true/false,
          "COMMENT": "column description"
        }}
      }},
      "PRIMARY_KEYS": ["column1", "column2"],
      "FOREIGN_KEYS": [
        {{
          "COLUMNS": ["local_column"],
          "FOREIGN_TABLE": "referenced_table",
          "REFERRED_COLUMNS": ["referenced_column"],
          "ON_DELETE": "CASCADE/RESTRICT/SET NULL",
          "ON_UPDATE": "CASCADE/RESTRICT/SET NULL"
        }}
      ],
      "CHECKS": [],
      "INDEXES": [["column1"], ["column1", "column2"]],
      "COMMENT": "table description"
    }}
  }}
}}
""".strip()

AGENT_TEMPLATE = PromptTemplate.from_template(
    """
You are a database system design expert. Analyze the SQL schema and the user
request and propose modifications that follow system design best practices.

Use the following reference material when answering:
resources:
{resources}

CURRENT DATABASE SCHEMA:
{current_schema}

The schema is provided in JSON with the following structure:
"""
    + _SCHEMA_FORMAT
    + """

USER REQUEST:
{request}

Follow normalization, referential integrity, indexing, data type, naming,
scalability, security and ACID principles. Include an analysis of the current
schema, the issues you found, the DDL to apply, and the risks of the change.

Put the complete new schema, in the JSON format above, in a ```json block
under a section headed:
# SCHEMA CHANGES
and close it with:
# END SCHEMA CHANGES

Put the DDL statements that migrate the old schema to the new one in a ```sql
block under a section headed:
# SCHEMA DDL
and close it with:
# END SCHEMA DDL
""".strip()
)

CHAT_TEMPLATE = PromptTemplate.from_template(
    """
You are a helpful database expert. The user is asking about database concepts.
Answer conversationally in plain prose, grounded in the context below. If the
context does not cover the question, say so instead of guessing.

Context:
{resources}

User query: {question}
""".strip()
)

REPORT_TEMPLATE = PromptTemplate.from_template(
    """
You are a database operations analyst writing for a project manager.
Write a concise report in markdown based on the usage analytics and schema
below. Cover resource usage trends, cost drivers, anomalies, and concrete
recommendations for the schema and the deployment.

{resources}

ANALYTICS:
{analytics}

DATABASE SCHEMA:
{current_schema}
""".strip()
)

NO_RESOURCES = "resources: none"


def build_agent_prompt(*, resources: str, schema: str, request: str) -> str:
    return AGENT_TEMPLATE.format(
        resources=resources or NO_RESOURCES,
        current_schema=schema or "{}",
        request=request,
    )


def build_chat_prompt(*, resources: str, question: str) -> str:
    return CHAT_TEMPLATE.format(resources=resources, question=question)


def build_report_prompt(*, analytics: str, schema: str) -> str:
    return REPORT_TEMPLATE.format(
        resources=NO_RESOURCES, analytics=analytics, current_schema=schema or "{}"
    )
