"""
gateway_bootstrap — Convergent setup for a local LLM gateway.

Brings a workstation to a running LiteLLM gateway in front of Ollama, with an
Anthropic fallback route.  Every step is idempotent; `setup` can be re-run at
any time.
"""

from gateway_bootstrap.config import RunConfig, build_run_config
from gateway_bootstrap.engine import STEP_ORDER, build_context, run_pipeline, run_start, run_stop
from gateway_bootstrap.exceptions import BootstrapError
from gateway_bootstrap.models import RuntimeKind, StepResult, StepStatus

__all__ = [
    "STEP_ORDER",
    "BootstrapError",
    "RunConfig",
    "RuntimeKind",
    "StepResult",
    "StepStatus",
    "build_context",
    "build_run_config",
    "run_pipeline",
    "run_start",
    "run_stop",
]
