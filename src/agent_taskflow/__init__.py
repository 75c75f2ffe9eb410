"""Agent task orchestration engine.

Three independent paths share one error taxonomy and one cancellation model:

- ``dispatch``: send a composed prompt to an LLM provider with retry/backoff.
- ``jobs``: kick off a remote long-running job and poll it to a terminal state.
- ``pipeline``: design -> delegate -> execute -> evaluate over role-tagged agents.
"""

__version__ = "0.1.0"
