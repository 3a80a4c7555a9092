from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from quotas import __version__
from quotas.cli import cli
from quotas.renderer import render_stream, split_stream
from quotas.repository import ConfigProvider
from quotas.validation import load_quota_set

PROD_VALUES = {
    "quotas": [
        {"namespace": "prod", "limits": {"pods": "30"}},
        {"namespace": "critical", "hard": {"cpu": "6"}},
    ]
}
DEV_VALUES = {"quotas": [{"namespace": "dev", "limits": {"pods": "10"}}]}


def _write_values(path: Path, values: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(values, sort_keys=False))


@pytest.fixture
def project(tmp_path: Path, monkeypatch):
    (tmp_path / ".quotas.yaml").write_text(
        yaml.safe_dump(
            {
                "environments": [
                    {"name": "dev", "values_file": "environments/dev/values.yaml"},
                    {
                        "name": "prod",
                        "values_file": "environments/prod/values.yaml",
                        "aliases": ["production"],
                    },
                ],
                "render": {"output_path": "rendered"},
            }
        )
    )
    _write_values(tmp_path / "environments/dev/values.yaml", DEV_VALUES)
    _write_values(tmp_path / "environments/prod/values.yaml", PROD_VALUES)
    (tmp_path / "chart").mkdir()

    monkeypatch.chdir(tmp_path)
    ConfigProvider.reset()
    with (
        patch("quotas.repository.get_repo_root", return_value=tmp_path),
        patch("quotas.commands.config_cmd.get_repo_root", return_value=tmp_path),
    ):
        yield tmp_path
    ConfigProvider.reset()


def _rendered(project: Path, env: str) -> Path:
    return project / "rendered" / env / "resource-quotas" / "_all.yaml"


class TestCliGroup:
    def test_help_lists_commands(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ["validate", "render", "schema", "config"]:
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestValidateCommand:
    def test_valid_environment(self, project: Path):
        result = CliRunner().invoke(cli, ["validate", "--env", "prod"])

        assert result.exit_code == 0
        assert "2 quota declaration(s) valid" in result.output

    def test_alias(self, project: Path):
        result = CliRunner().invoke(cli, ["validate", "--env", "production"])
        assert result.exit_code == 0

    def test_all_envs(self, project: Path):
        result = CliRunner().invoke(cli, ["validate", "--all-envs"])

        assert result.exit_code == 0
        assert "dev" in result.output
        assert "prod" in result.output

    def test_invalid_file_reports_index_and_field(self, project: Path):
        bad: Path = project / "bad.yaml"
        _write_values(
            bad,
            {"quotas": [{"namespace": "ok", "limits": {"pods": "1"}}, {"limits": {"pods": "1"}}]},
        )

        result = CliRunner().invoke(cli, ["validate", "-f", str(bad)])

        assert result.exit_code == 1
        assert "quotas[1].namespace" in result.output

    def test_duplicate_namespaces(self, project: Path):
        _write_values(
            project / "environments/dev/values.yaml",
            {
                "quotas": [
                    {"namespace": "x", "limits": {"pods": "1"}},
                    {"namespace": "x", "limits": {"pods": "2"}},
                ]
            },
        )

        result = CliRunner().invoke(cli, ["validate", "--env", "dev"])

        assert result.exit_code == 1
        assert "duplicate namespace" in result.output

    def test_unknown_environment(self, project: Path):
        result = CliRunner().invoke(cli, ["validate", "--env", "staging"])

        assert result.exit_code == 1
        assert "Unknown environment" in result.output

    def test_missing_values_file(self, project: Path):
        (project / "environments/dev/values.yaml").unlink()

        result = CliRunner().invoke(cli, ["validate", "--env", "dev"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestRenderList:
    def test_lists_quotas(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "list", "--env", "prod"])

        assert result.exit_code == 0
        assert "prod-quota" in result.output
        assert "critical-quota" in result.output

    def test_empty_quota_list(self, project: Path):
        _write_values(project / "environments/dev/values.yaml", {"quotas": []})

        result = CliRunner().invoke(cli, ["render", "list", "--env", "dev"])

        assert result.exit_code == 0
        assert "No quotas declared" in result.output


class TestRenderApply:
    def test_values_file_to_stdout(self, project: Path):
        values: Path = project / "environments/prod/values.yaml"

        result = CliRunner().invoke(cli, ["render", "apply", "-f", str(values)])

        assert result.exit_code == 0
        assert result.output == render_stream(load_quota_set(values))
        docs = split_stream(result.output)
        assert [d["metadata"]["name"] for d in docs] == ["prod-quota", "critical-quota"]
        assert docs[1]["spec"]["hard"] == {"cpu": "6"}

    def test_stdout_flag_all_envs(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "apply", "--all-envs", "--stdout"])

        assert result.exit_code == 0
        docs = split_stream(result.output)
        assert [d["metadata"]["namespace"] for d in docs] == ["dev", "prod", "critical"]

    def test_writes_to_local_storage(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "apply", "--env", "prod"])

        assert result.exit_code == 0
        content = _rendered(project, "prod").read_text()
        assert content == render_stream(load_quota_set(project / "environments/prod/values.yaml"))

    def test_git_ref(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "apply", "--env", "dev", "--git-ref", "main"])

        assert result.exit_code == 0
        assert (project / "rendered/dev/resource-quotas/main/_all.yaml").exists()

    def test_dry_run_writes_nothing(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "apply", "--all-envs", "--dry-run"])

        assert result.exit_code == 0
        assert "Would write" in result.output
        assert not (project / "rendered").exists()

    @pytest.mark.parametrize("flag", ["--stdout", "-f"])
    def test_dry_run_rejected_when_printing(self, project: Path, flag: str):
        args = [flag, "environments/dev/values.yaml"] if flag == "-f" else ["--env", "dev", flag]

        result = CliRunner().invoke(cli, ["render", "apply", *args, "--dry-run"])

        assert result.exit_code == 1
        assert "--dry-run cannot be combined" in result.output
        assert "apiVersion" not in result.output

    def test_invalid_values_render_nothing(self, project: Path):
        _write_values(project / "environments/dev/values.yaml", {"quotas": [{"namespace": "dev"}]})

        result = CliRunner().invoke(cli, ["render", "apply", "--env", "dev"])

        assert result.exit_code == 1
        assert "quotas[0].limits" in result.output
        assert not _rendered(project, "dev").exists()

    def test_invalid_values_file_to_stdout(self, project: Path):
        bad: Path = project / "bad.yaml"
        _write_values(bad, {"quotas": [{"namespace": "dev", "limits": {}}], "extra": 1})

        result = CliRunner().invoke(cli, ["render", "apply", "-f", str(bad)])

        assert result.exit_code == 1
        assert "apiVersion" not in result.output


class TestRenderDiff:
    def test_no_changes(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "prod"])

        result = runner.invoke(cli, ["render", "diff", "--env", "prod", "--exit-code"])

        assert result.exit_code == 0
        assert "No changes" in result.output

    def test_changed_limits(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "prod"])
        changed = {
            "quotas": [
                {"namespace": "prod", "limits": {"pods": "40"}},
                {"namespace": "critical", "hard": {"cpu": "6"}},
            ]
        }
        _write_values(project / "environments/prod/values.yaml", changed)

        result = runner.invoke(cli, ["render", "diff", "--env", "prod"])
        assert result.exit_code == 0
        assert "+    pods: '40'" in result.output

        result = runner.invoke(cli, ["render", "diff", "--env", "prod", "--exit-code"])
        assert result.exit_code == 1

    def test_missing_baseline(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "diff", "--env", "dev"])

        assert result.exit_code == 0
        assert "No baseline" in result.output
        assert "NEW: ResourceQuota/dev/dev-quota" in result.output


class TestRenderStored:
    def test_lists_stored_baselines(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "prod"])
        runner.invoke(cli, ["render", "apply", "--env", "dev", "--git-ref", "main"])

        result = runner.invoke(cli, ["render", "stored"])

        assert result.exit_code == 0
        assert "prod" in result.output
        assert "main" in result.output

    def test_filter_by_alias(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--all-envs"])

        result = runner.invoke(cli, ["render", "stored", "--env", "production"])

        assert result.exit_code == 0
        assert "prod" in result.output
        assert "dev/resource-quotas" not in result.output.replace("\n", "")

    def test_nothing_stored(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "stored"])

        assert result.exit_code == 0
        assert "No stored baselines found" in result.output


class TestRenderPrune:
    def test_dry_run_keeps_baseline(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "prod"])

        result = runner.invoke(cli, ["render", "prune", "--env", "prod", "--dry-run"])

        assert result.exit_code == 0
        assert "1 baseline(s) would be deleted" in result.output
        assert _rendered(project, "prod").exists()

    def test_deletes_unversioned_baseline(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "prod"])

        result = runner.invoke(cli, ["render", "prune", "--env", "prod"])

        assert result.exit_code == 0
        assert "Deleted 1 baseline(s)" in result.output
        assert not _rendered(project, "prod").exists()

    def test_git_ref_leaves_other_baselines(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "dev"])
        runner.invoke(cli, ["render", "apply", "--env", "dev", "--git-ref", "main"])

        result = runner.invoke(cli, ["render", "prune", "--env", "dev", "--git-ref", "main"])

        assert result.exit_code == 0
        assert not (project / "rendered/dev/resource-quotas/main/_all.yaml").exists()
        assert _rendered(project, "dev").exists()

    def test_all_refs(self, project: Path):
        runner = CliRunner()
        runner.invoke(cli, ["render", "apply", "--env", "dev"])
        runner.invoke(cli, ["render", "apply", "--env", "dev", "--git-ref", "main"])

        result = runner.invoke(cli, ["render", "prune", "--env", "dev", "--all-refs"])

        assert result.exit_code == 0
        assert "Deleted 2 baseline(s)" in result.output
        assert not (project / "rendered/dev/resource-quotas/main/_all.yaml").exists()
        assert not _rendered(project, "dev").exists()

    def test_nothing_stored(self, project: Path):
        result = CliRunner().invoke(cli, ["render", "prune", "--env", "prod"])

        assert result.exit_code == 0
        assert "Nothing stored" in result.output


class TestConfigCommands:
    def test_show(self, project: Path):
        result = CliRunner().invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "environments/prod/values.yaml" in result.output

    def test_init_refuses_to_overwrite(self, project: Path):
        result = CliRunner().invoke(cli, ["config", "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_init_force(self, project: Path):
        result = CliRunner().invoke(cli, ["config", "init", "--force"])

        assert result.exit_code == 0
        data = yaml.safe_load((project / ".quotas.yaml").read_text())
        assert [env["name"] for env in data["environments"]] == ["dev", "prod"]


class TestSchemaApplyDefaultPath:
    def test_writes_into_chart(self, project: Path):
        result = CliRunner().invoke(cli, ["schema", "apply"])

        assert result.exit_code == 0
        assert (project / "chart" / "values.schema.json").exists()
