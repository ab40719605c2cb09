"""
Knowledge lookup package: chat-completion clients and the query workflow.

Import ``QueryWorkflow`` directly from here to simplify access:

```python
from knowledge import QueryWorkflow

workflow = QueryWorkflow(settings_store=settings_store, record_store=record_store)
```
"""

from .query_workflow import QueryWorkflow  # noqa: F401

__all__ = ["QueryWorkflow"]
