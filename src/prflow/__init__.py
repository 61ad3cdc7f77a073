"""Step pipeline runner that turns issues and specs into pull requests.

This package provides:
- A sequential pipeline engine with fail-fast step execution
- Executors for chat-completion APIs, delegated coding-agent CLIs and shell commands
- Input resolution with virtual inputs (git diff, project context)
- Token-budget truncation for API-bound steps
- Durable per-run metadata and artifacts under .prflow/runs
"""

__version__ = "0.4.0"
