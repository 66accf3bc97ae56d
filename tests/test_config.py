"""
Tests for configuration — stack loading, variables, and config check.
"""

import textwrap
from pathlib import Path

import pytest

from infraplane.adapters.shell.command import ShellCommandProvider
from infraplane.core.config.loader import ConfigError, find_stack_file, load_stack, locate_stack
from infraplane.core.config.variables import (
    coerce_cli_value,
    load_var_file,
    parse_var_args,
    resolve_variables,
    type_matches,
)
from infraplane.core.errors import ValidationError
from infraplane.core.models.stack import VariableSpec
from infraplane.core.use_cases.config_check import check_config


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "stack.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestLoadStack:
    def test_load_example(self, fixtures_dir: Path):
        stack = load_stack(fixtures_dir / "stack.yml")
        assert stack.name == "web-tier"
        assert stack.provider.region == "us-east-1"
        assert len(stack.resources) == 9
        assert stack.get_resource("asg").references == {"launch_template", "target_group", "lb"}
        assert stack.variables["desired_capacity"].type == "number"
        assert len(stack.resources_by_provider("null")) == 9

    def test_wrapped_under_stack_key(self, tmp_path: Path):
        path = _write(tmp_path, """\
            stack:
              name: wrapped
            resources:
              - id: a
                type: null_thing
        """)
        stack = load_stack(path)
        assert stack.name == "wrapped"
        assert [r.id for r in stack.resources] == ["a"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_stack(tmp_path / "stack.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path, "name: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_stack(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_stack(path)

    def test_invalid_resource(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: bad
            resources:
              - id: 1bad
                type: null_thing
        """)
        with pytest.raises(ConfigError, match="Invalid stack configuration"):
            load_stack(path)

    def test_errors_carry_locations(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: bad
            resources:
              - id: ok
                type: null_thing
              - id: 1bad
                type: null_thing
              - id: fine
                type: notype
        """)
        with pytest.raises(ConfigError) as exc:
            load_stack(path)
        assert any(e.startswith("resources[1].id: ") for e in exc.value.errors)
        assert any(e.startswith("resources[2].type: ") for e in exc.value.errors)

    def test_resources_as_mapping(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: mapped
            resources:
              vpc:
                type: null_vpc
              subnet:
                type: null_subnet
                properties: {vpc_id: "${vpc.id}"}
        """)
        stack = load_stack(path)
        assert [r.id for r in stack.resources] == ["vpc", "subnet"]
        assert stack.get_resource("subnet").references == {"vpc"}

    def test_mapping_id_must_match_key(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: mapped
            resources:
              vpc:
                id: other
                type: null_vpc
        """)
        with pytest.raises(ConfigError) as exc:
            load_stack(path)
        assert "does not match its key" in exc.value.errors[0]

    def test_find_walks_up(self, stack_file: Path):
        nested = stack_file.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_stack_file(nested) == stack_file.resolve()

    def test_find_none(self, tmp_path: Path):
        assert find_stack_file(tmp_path) is None

    def test_find_yaml_extension(self, tmp_path: Path):
        path = tmp_path / "stack.yaml"
        path.write_text("name: alt\n")
        assert find_stack_file(tmp_path) == path.resolve()

    def test_locate_without_stack(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="--config"):
            locate_stack()
        assert locate_stack(tmp_path / "x.yml") == tmp_path / "x.yml"


class TestVariables:
    SPECS = {
        "env": VariableSpec(type="string", default="dev"),
        "count": VariableSpec(type="number", default=1),
        "enabled": VariableSpec(type="bool", default=False),
        "zones": VariableSpec(type="list", default=[]),
        "tags": VariableSpec(type="map", default={}),
        "image": VariableSpec(type="string"),
    }

    def test_required_flag(self):
        assert self.SPECS["image"].required
        assert not self.SPECS["env"].required
        assert not VariableSpec(default=None).required

    def test_defaults_and_required(self):
        values = resolve_variables(self.SPECS, cli_values={"image": "ami-1"})
        assert values == {
            "env": "dev", "count": 1, "enabled": False,
            "zones": [], "tags": {}, "image": "ami-1",
        }

    def test_precedence_cli_over_file(self):
        values = resolve_variables(
            self.SPECS,
            file_values={"env": "staging", "image": "ami-file"},
            cli_values={"env": "prod"},
        )
        assert values["env"] == "prod"
        assert values["image"] == "ami-file"

    def test_cli_coercion(self):
        values = resolve_variables(self.SPECS, cli_values={
            "image": "ami-1", "count": "3", "enabled": "yes",
            "zones": "[a, b]", "tags": "{team: web}",
        })
        assert values["count"] == 3
        assert values["enabled"] is True
        assert values["zones"] == ["a", "b"]
        assert values["tags"] == {"team": "web"}

    def test_errors_collected(self):
        with pytest.raises(ValidationError) as exc:
            resolve_variables(
                self.SPECS,
                file_values={"count": "many", "bogus": 1},
                cli_values={"enabled": "maybe"},
            )
        errors = exc.value.errors
        assert any("Unknown variable 'bogus'" in e for e in errors)
        assert any("'image' is required" in e for e in errors)
        assert any("'count'" in e and "expects number" in e for e in errors)
        assert any("'enabled'" in e for e in errors)

    def test_type_matches(self):
        assert type_matches("number", 1.5)
        assert not type_matches("number", True)
        assert type_matches("any", object())
        assert not type_matches("string", 3)

    def test_coerce_float(self):
        assert coerce_cli_value("number", "2.5") == 2.5
        with pytest.raises(ValueError):
            coerce_cli_value("number", "abc")

    def test_parse_var_args(self):
        assert parse_var_args(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}
        with pytest.raises(ValidationError):
            parse_var_args(["novalue"])

    def test_load_var_file(self, tmp_path: Path):
        path = tmp_path / "prod.yml"
        path.write_text("env: prod\ncount: 4\n")
        assert load_var_file(path) == {"env": "prod", "count": 4}

        bad = tmp_path / "bad.yml"
        bad.write_text("- a\n")
        with pytest.raises(ValidationError):
            load_var_file(bad)


class TestConfigCheck:
    def test_valid_example(self, stack_file: Path):
        result = check_config(stack_file)
        assert result.valid, result.errors
        assert result.order[0] == "vpc"
        assert result.order[-1] == "pipeline"
        assert result.to_dict()["resource_count"] == 9

    def test_cycle_reported(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: loop
            resources:
              - id: a
                type: null_thing
                properties: {b: "${b.id}"}
              - id: b
                type: null_thing
                depends_on: [a]
        """)
        result = check_config(path)
        assert not result.valid
        assert any("cycle" in e for e in result.errors)

    def test_undeclared_variable(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: vars
            resources:
              - id: a
                type: null_thing
                properties: {name: "${var.nope}"}
        """)
        result = check_config(path)
        assert not result.valid
        assert "undeclared variable 'nope'" in result.errors[0]

    def test_warnings(self, tmp_path: Path):
        path = _write(tmp_path, """\
            name: warn
            variables:
              image: {type: string}
            resources:
              - id: bucket
                type: aws_s3_bucket
        """)
        result = check_config(path)
        assert result.valid
        assert any("image" in w for w in result.warnings)
        assert any("aws_s3_bucket" in w for w in result.warnings)

    def test_missing_file(self, tmp_path: Path):
        result = check_config(tmp_path / "stack.yml")
        assert not result.valid

    def test_unavailable_provider_warns(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(ShellCommandProvider, "is_available", lambda self: False)
        path = _write(tmp_path, """\
            name: shell
            resources:
              - id: hook
                type: shell_command
                properties: {create: "true"}
        """)
        result = check_config(path)
        assert result.valid
        assert result.providers["shell"]["available"] is False
        assert any("'shell'" in w and "'hook'" in w for w in result.warnings)
