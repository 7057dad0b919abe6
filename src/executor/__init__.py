"""Execution core: runs agent requests against the workflow engine.

Takes an agent id and user input, dispatches it to the agent's webhook,
and tracks the resulting Execution through to a terminal state.

Architecture (bottom-up):
- schemas: Execution lifecycle model, input/output/error records
- errors: Error taxonomy and normalization (parse_error)
- validation: Declarative input rules
- retry: Opt-in retry with exponential backoff
- cancellation: Tokens that abort poll loops and backoff waits
- output_parser: Result shapes -> ExecutionOutput, binary blob handles
- poller: Polls a long-running engine job until terminal or timed out
- execution_store: In-memory per-agent history, sole writer to storage
- execution_service: The orchestrator (execute_agent)
"""
