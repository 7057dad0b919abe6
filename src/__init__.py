"""Agent Hub - agent execution orchestration service.

Submits user prompts to named agents, which forward them to an external
workflow engine over HTTP, and tracks each execution to a terminal result:
- Agent definitions (webhook path, input/output schema, timing settings)
- Execution lifecycle, polling and retry policy
- Bounded, quota-aware execution history
"""

__version__ = "0.1.0"
