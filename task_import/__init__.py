"""
Task Import Engine

Imports work items from external project management tools into the
internal task model.

Supports:
- Multiple providers (Jira, Trello, Asana, Linear, Monday.com, CSV files)
- Credential validation with masked display
- Default and custom field mappings with value transforms
- Paged fetching with bounded fetch-ahead and in-order commits
- Partial-failure reporting and retry with backoff
- A guarded step-by-step import wizard
"""

__version__ = "0.1.0"
