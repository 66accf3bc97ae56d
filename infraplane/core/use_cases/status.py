"""
Status use case — declared resources vs. recorded live state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from infraplane.core.config.loader import load_stack, locate_stack, stack_root
from infraplane.core.errors import ConfigError, StateError
from infraplane.core.models.stack import Stack
from infraplane.core.models.state import StackState
from infraplane.core.persistence.state_file import default_state_path, load_state


@dataclass
class StatusResult:
    """Aggregated stack status."""

    stack: Stack | None = None
    state: StackState | None = None
    stack_root: Path | None = None
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    tracked: list[str] = field(default_factory=list)     # declared and in state
    pending: list[str] = field(default_factory=list)     # declared, not yet created
    orphaned: list[str] = field(default_factory=list)    # in state, no longer declared

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "errors": self.errors}

        result: dict = {
            "stack": {
                "name": self.stack.name if self.stack else "",
                "description": self.stack.description if self.stack else "",
                "region": self.stack.provider.region if self.stack else "",
            },
            "tracked": self.tracked,
            "pending": self.pending,
            "orphaned": self.orphaned,
        }

        if self.state:
            last = self.state.last_operation
            result["last_operation"] = last.model_dump()
            result["resources"] = {
                rid: {
                    "type": rs.type,
                    "provider": rs.provider,
                    "updated_at": rs.updated_at,
                    "outputs": rs.outputs,
                }
                for rid, rs in sorted(self.state.resources.items())
            }

        return result


def get_status(config_path: Path | None = None) -> StatusResult:
    """Get stack status from stack.yml and .state/current.json.

    Args:
        config_path: Optional explicit path to stack.yml.

    Returns:
        StatusResult (``error`` set if the stack cannot be loaded).
    """
    result = StatusResult()

    try:
        config_path = locate_stack(config_path)
        result.stack = load_stack(config_path)
        result.stack_root = stack_root(config_path)
        result.state = load_state(default_state_path(result.stack_root), result.stack.name)
    except ConfigError as e:
        result.error = str(e)
        result.errors = e.errors
        return result
    except StateError as e:
        result.error = str(e)
        return result

    declared = [r.id for r in result.stack.resources]
    live = result.state.resources
    result.tracked = [rid for rid in declared if rid in live]
    result.pending = [rid for rid in declared if rid not in live]
    result.orphaned = sorted(rid for rid in live if rid not in set(declared))
    return result
