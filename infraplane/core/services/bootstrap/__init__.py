"""Host bootstrap — install an agent, start it, verify it is running."""

from infraplane.core.services.bootstrap.agent import (
    AgentBootstrap,
    build_steps,
    render_user_data,
    run_bootstrap,
)
from infraplane.core.services.bootstrap.models import (
    BootstrapConfig,
    BootstrapPhase,
    BootstrapResult,
    ServiceProbe,
    StepResult,
)
from infraplane.core.services.bootstrap.runner import run_command

__all__ = [
    "AgentBootstrap",
    "BootstrapConfig",
    "BootstrapPhase",
    "BootstrapResult",
    "ServiceProbe",
    "StepResult",
    "build_steps",
    "render_user_data",
    "run_bootstrap",
    "run_command",
]
