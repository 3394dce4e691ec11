"""Tests for the command line interface."""

import argparse
import json
import sys

import pytest

from content_migrator import cli
from content_migrator.models.flow import ConflictResolution


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["content-migrator", *argv])
    cli.main()


class TestPlanCommand:
    """Test suite for `plan`."""

    def test_plan_from_metadata_file(self, monkeypatch, capsys, tmp_path, blog_metadata_payload):
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps({"data": blog_metadata_payload}))

        run_cli(monkeypatch, "plan", "--metadata", str(path), "-c", "articles")

        out = capsys.readouterr().out
        assert "1. authors" in out
        assert "2. articles  (after authors)" in out
        assert "1: authors, tags" in out

    def test_plan_needs_source(self, monkeypatch, capsys):
        monkeypatch.delenv("SOURCE_URL", raising=False)
        monkeypatch.delenv("SOURCE_TOKEN", raising=False)

        with pytest.raises(SystemExit) as exc:
            run_cli(monkeypatch, "plan", "-c", "articles")

        assert exc.value.code == 2


class TestFilterDiffCommand:
    """Test suite for `filter-diff`."""

    @pytest.fixture
    def diff_file(self, tmp_path):
        path = tmp_path / "diff.json"
        path.write_text(json.dumps({"data": {
            "hash": "abc",
            "diff": {"collections": [{"collection": "A", "diff": [{"kind": "N"}]}], "fields": [], "relations": []},
        }}))
        return path

    def test_writes_filtered_diff(self, monkeypatch, tmp_path, diff_file):
        output = tmp_path / "filtered.json"

        run_cli(monkeypatch, "filter-diff", "--diff", str(diff_file), "-c", "A", "--output", str(output))

        saved = json.loads(output.read_text())
        assert saved["hash"] == "abc"
        assert len(saved["diff"]["collections"]) == 1

    def test_nothing_to_apply(self, monkeypatch, capsys, diff_file):
        run_cli(monkeypatch, "filter-diff", "--diff", str(diff_file), "-c", "B")

        assert "Nothing to apply for this selection" in capsys.readouterr().out


class TestBuildConfig:
    """Test suite for turning arguments into a config."""

    def make_args(self, command, **overrides):
        values = {
            "command": command,
            "config": None,
            "source_url": "https://a",
            "source_token": "s",
            "target_url": "https://b",
            "target_token": "t",
            "dry_run": False,
            "output_dir": None,
        }
        values.update(overrides)
        return argparse.Namespace(**values)

    def test_single_phase(self):
        config = cli.build_config(self.make_args(
            "data", collections="articles, pages", include_system=False, no_closure=True,
            order=None, limit=5, concurrency=4,
        ))

        assert config.collections == ["articles", "pages"]
        assert config.expand_closure is False
        assert (config.item_limit, config.concurrency) == (5, 4)
        assert config.migrate_data and not config.migrate_schema and not config.migrate_access_control
        assert config.flows == []

    def test_flows_command(self):
        config = cli.build_config(self.make_args("flows", flow=None, new_ids=True))

        assert config.flows == ["*"]
        assert config.preserve_flow_ids is False
        assert not config.migrate_data

    def test_flows_conflict_and_base_url(self):
        config = cli.build_config(self.make_args(
            "flows", flow=["f1"], new_ids=False, conflict="skip", base_url="https://cms.example.com",
        ))

        assert config.flows == ["f1"]
        assert config.flow_conflict == ConflictResolution.SKIP
        assert config.flow_environment.base_url == "https://cms.example.com"

    def test_files_command(self):
        config = cli.build_config(self.make_args("files", folder=["media"], new_ids=True))

        assert config.migrate_files
        assert config.file_folders == ["media"]
        assert config.preserve_file_ids is False
        assert not (config.migrate_schema or config.migrate_data or config.migrate_access_control)
        assert config.flows == []

    def test_title_filter(self):
        config = cli.build_config(self.make_args("data", title_filter="Launch"))

        assert config.title_filter == "Launch"
        assert config.migrate_files is False

    def test_config_file_with_overrides(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"name": "nightly", "collections": ["pages"], "concurrency": 2}))

        config = cli.build_config(self.make_args(
            "run", config=str(path), collections=None, include_system=True, no_closure=False,
            order="pages", dry_run=True,
        ))

        assert config.name == "nightly"
        assert config.collections == ["pages"]
        assert config.include_system and config.dry_run
        assert config.custom_order == ["pages"]
        assert config.concurrency == 2
        assert config.source.url == "https://a"
