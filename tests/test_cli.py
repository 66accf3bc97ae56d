"""
Tests for CLI commands — plan, apply, destroy, status, config, history, bootstrap.
"""

import functools
import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from infraplane.core.persistence.state_file import default_state_path, load_state
from infraplane.core.use_cases import bootstrap as bootstrap_use_case
from infraplane.main import cli


def _invoke(stack_file: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(stack_file), *args])


def _write_stack(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "stack.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Infraplane" in result.output
        for command in ("plan", "apply", "destroy", "status", "bootstrap"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPlanCommand:
    def test_plan_fresh_stack(self, stack_file: Path):
        result = _invoke(stack_file, "plan")
        assert result.exit_code == 0, result.output
        assert "9 to create" in result.output
        assert "(known after apply)" in result.output
        assert not default_state_path(stack_file.parent).exists()

    def test_plan_json(self, stack_file: Path):
        result = _invoke(stack_file, "plan", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["plan"]["counts"]["create"] == 9
        assert data["variables"]["environment"] == "dev"
        order = [c["resource_id"] for c in data["plan"]["changes"]]
        assert order.index("vpc") < order.index("subnet") < order.index("lb") < order.index("asg")

    def test_unknown_variable(self, stack_file: Path):
        result = _invoke(stack_file, "plan", "--var", "nope=1")
        assert result.exit_code == 1
        assert "Unknown variable 'nope'" in result.output

    def test_var_file(self, stack_file: Path, tmp_path: Path):
        var_file = tmp_path / "prod.yml"
        var_file.write_text("environment: prod\n")
        result = _invoke(stack_file, "plan", "--json", "--var-file", str(var_file))
        data = json.loads(result.stdout)
        vpc = next(c for c in data["plan"]["changes"] if c["resource_id"] == "vpc")
        assert vpc["desired"]["name"] == "prod-vpc"

    def test_cycle_exits_nonzero(self, tmp_path: Path):
        path = _write_stack(tmp_path, """\
            name: loop
            resources:
              - id: a
                type: null_thing
                depends_on: [b]
              - id: b
                type: null_thing
                depends_on: [a]
        """)
        result = _invoke(path, "plan")
        assert result.exit_code == 1
        assert "cycle" in result.output

    def test_no_stack(self, tmp_path: Path):
        result = _invoke(tmp_path / "stack.yml", "plan")
        assert result.exit_code == 1


class TestApplyCommand:
    def test_apply_then_noop(self, stack_file: Path):
        result = _invoke(stack_file, "apply")
        assert result.exit_code == 0, result.output
        assert "9/9 succeeded" in result.output

        state = load_state(default_state_path(stack_file.parent))
        assert len(state.resources) == 9
        assert state.stack_name == "web-tier"
        assert state.resources["subnet"].properties["vpc_id"] == state.resources["vpc"].outputs["id"]
        assert state.last_operation.status == "ok"

        again = _invoke(stack_file, "plan")
        assert "No changes" in again.output

    def test_variable_change_updates_one_resource(self, stack_file: Path):
        _invoke(stack_file, "apply")
        result = _invoke(stack_file, "plan", "--json", "--var", "desired_capacity=4")
        planned = json.loads(result.stdout)["plan"]
        assert planned["counts"] == {"create": 0, "update": 2, "noop": 7, "delete": 0}
        deploy = next(c for c in planned["changes"] if c["resource_id"] == "deploy_app")
        assert deploy["unknown_keys"] == ["autoscaling_group"]

        # The scaling group keeps its id, so only it is called
        result = _invoke(stack_file, "apply", "--json", "--var", "desired_capacity=4")
        report = json.loads(result.stdout)["report"]
        assert report["total"] == 1
        assert "deploy_app" in report["noops"]

    def test_dry_run_writes_nothing(self, stack_file: Path):
        result = _invoke(stack_file, "apply", "--dry-run")
        assert result.exit_code == 0, result.output
        assert "[dry-run]" in result.output
        assert not default_state_path(stack_file.parent).exists()

    def test_mock_and_parallel(self, stack_file: Path):
        result = _invoke(stack_file, "apply", "--mock", "--parallelism", "4", "--json")
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)["report"]
        assert report["succeeded"] == 9

    def test_failure_exit_code_and_stderr(self, tmp_path: Path):
        path = _write_stack(tmp_path, """\
            name: failing
            resources:
              - id: base
                type: null_thing
              - id: broken
                type: shell_command
                properties:
                  create: "exit 1"
                  after: "${base.id}"
              - id: downstream
                type: null_thing
                properties:
                  input: "${broken.stdout}"
        """)
        result = _invoke(path, "apply")
        assert result.exit_code == 1
        assert "broken: create failed: Command exited with code 1" in result.output

        state = load_state(default_state_path(tmp_path))
        assert set(state.resources) == {"base"}
        assert state.last_operation.status == "partial"

    def test_failure_json_reports_errors_on_stderr(self, tmp_path: Path):
        path = _write_stack(tmp_path, """\
            name: failing
            resources:
              - id: broken
                type: shell_command
                properties:
                  create: "exit 3"
        """)
        result = _invoke(path, "apply", "--json")
        assert result.exit_code == 1
        report = json.loads(result.stdout)["report"]
        assert report["failed"] == 1
        assert "broken: create failed: Command exited with code 3" in result.stderr

    def test_corrupt_state_stops_apply(self, stack_file: Path):
        state_path = default_state_path(stack_file.parent)
        state_path.parent.mkdir()
        state_path.write_text("{truncated")

        result = _invoke(stack_file, "apply")
        assert result.exit_code == 1
        assert "not valid JSON" in result.stderr
        assert state_path.read_text() == "{truncated"

    def test_removed_resource_deleted(self, stack_file: Path):
        _invoke(stack_file, "apply")
        text = stack_file.read_text()
        stack_file.write_text(text.split("  - id: pipeline")[0])

        result = _invoke(stack_file, "apply")
        assert result.exit_code == 0, result.output
        assert "pipeline [delete]" in result.output
        state = load_state(default_state_path(stack_file.parent))
        assert "pipeline" not in state.resources


class TestDestroyCommand:
    def test_destroy(self, stack_file: Path):
        _invoke(stack_file, "apply")
        result = _invoke(stack_file, "destroy", "--yes")
        assert result.exit_code == 0, result.output
        assert load_state(default_state_path(stack_file.parent)).resources == {}

    def test_destroy_requires_confirmation(self, stack_file: Path):
        _invoke(stack_file, "apply")
        result = CliRunner().invoke(cli, ["--config", str(stack_file), "destroy"], input="n\n")
        assert result.exit_code == 1
        assert len(load_state(default_state_path(stack_file.parent)).resources) == 9


class TestStatusAndHistory:
    def test_status_before_and_after(self, stack_file: Path):
        before = json.loads(_invoke(stack_file, "status", "--json").stdout)
        assert len(before["pending"]) == 9

        _invoke(stack_file, "apply")
        result = _invoke(stack_file, "status")
        assert result.exit_code == 0
        assert "web-tier" in result.output
        assert "apply" in result.output

        after = json.loads(_invoke(stack_file, "status", "--json").stdout)
        assert after["pending"] == []
        assert after["last_operation"]["status"] == "ok"

    def test_status_rejects_other_stacks_state(self, stack_file: Path):
        _invoke(stack_file, "apply")
        stack_file.write_text(stack_file.read_text().replace("name: web-tier", "name: data-tier", 1))

        result = _invoke(stack_file, "status", "--json")
        assert result.exit_code == 1
        assert "belongs to stack 'web-tier'" in json.loads(result.stdout)["error"]

    def test_history(self, stack_file: Path):
        _invoke(stack_file, "apply")
        _invoke(stack_file, "destroy", "--yes")

        entries = json.loads(_invoke(stack_file, "history", "--json").stdout)
        assert [e["operation_type"] for e in entries] == ["apply", "destroy"]

        only = json.loads(_invoke(stack_file, "history", "--json", "--operation", "destroy").stdout)
        assert len(only) == 1

    def test_history_for_resource(self, stack_file: Path):
        _invoke(stack_file, "apply")
        _invoke(stack_file, "apply", "--var", "desired_capacity=4")

        def history(*args):
            return json.loads(_invoke(stack_file, "history", "--json", *args).stdout)

        assert len(history()) == 2
        assert len(history("--resource", "asg")) == 2
        (vpc_entry,) = history("--resource", "vpc")
        assert {c["resource_id"] for c in vpc_entry["changes"]} >= {"vpc", "subnet", "asg"}
        assert vpc_entry["planned"]["create"] == 9
        assert history("--resource", "ghost") == []

    def test_empty_history(self, stack_file: Path):
        result = _invoke(stack_file, "history")
        assert "No operations recorded" in result.output


class TestConfigCheckCommand:
    def test_valid(self, stack_file: Path):
        result = _invoke(stack_file, "config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_invalid_json(self, tmp_path: Path):
        path = _write_stack(tmp_path, """\
            name: bad
            resources:
              - id: a
                type: null_thing
                depends_on: [ghost]
        """)
        result = _invoke(path, "config", "check", "--json")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert "ghost" in data["errors"][0]


def _stopped_agent(cmd, *, needs_sudo=False, timeout=120, cwd=None):
    """Every command succeeds; the status check reports the agent stopped."""
    if cmd[-1] == "status":
        return {"ok": False, "stdout": "codedeploy-agent is dead", "stderr": "", "returncode": 1}
    return {"ok": True, "stdout": "", "stderr": "", "returncode": 0, "elapsed_ms": 1}


@pytest.fixture
def stopped_agent(monkeypatch):
    for name in ("bootstrap_host", "probe_service"):
        original = getattr(bootstrap_use_case, name)
        monkeypatch.setattr(
            bootstrap_use_case, name, functools.partial(original, runner=_stopped_agent)
        )


class TestBootstrapCommand:
    def test_script_matches_shipped(self, project_root: Path):
        result = CliRunner().invoke(cli, ["bootstrap", "script"])
        assert result.exit_code == 0
        assert result.output == (project_root / "scripts" / "ec2-init.sh").read_text()

    def test_script_to_file(self, tmp_path: Path):
        out = tmp_path / "user-data.sh"
        result = CliRunner().invoke(
            cli, ["bootstrap", "script", "--region", "eu-west-1", "-o", str(out)]
        )
        assert result.exit_code == 0
        assert "aws-codedeploy-eu-west-1" in out.read_text()

    def test_run_dry_run(self, stack_file: Path):
        result = _invoke(stack_file, "bootstrap", "run", "--dry-run")
        assert result.exit_code == 0, result.output
        assert "$ service codedeploy-agent start" in result.output
        assert "bootstrap planned" in result.output

    def test_stopped_agent_reported_on_stdout(self, stopped_agent):
        result = CliRunner().invoke(cli, ["bootstrap", "probe"])
        assert result.exit_code == 1
        assert "CodeDeploy agent service is not running :(" in result.stdout
        assert "codedeploy-agent is dead" in result.stdout
        assert "service is not running" not in result.stderr

    def test_run_not_running_on_stdout(self, stack_file: Path, stopped_agent):
        result = _invoke(stack_file, "bootstrap", "run")
        assert result.exit_code == 1
        assert "CodeDeploy agent service is not running :(" in result.stdout
        assert "service is not running" not in result.stderr
