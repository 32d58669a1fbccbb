"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work. Every
command runs in-process against an in-memory SQLite store.

Usage:
    pytest tests/smoke/test_cli.py -v
    pytest tests/smoke/test_cli.py -v -m smoke
"""

import json

import pytest
from typer.testing import CliRunner

from learnpath.cli import main as cli

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_store(monkeypatch, store):
    monkeypatch.setattr(cli, "get_store", lambda: store)
    return store


def invoke(*args: str):
    result = runner.invoke(cli.app, list(args))
    return result.exit_code, result.output


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        code, output = invoke("--help")
        assert code == 0
        assert "path" in output
        assert "placement" in output

    @pytest.mark.parametrize("group", ["db", "config", "path", "event", "placement"])
    def test_group_help(self, group):
        code, _ = invoke(group, "--help")
        assert code == 0


class TestPathCommands:
    def test_build_show_next(self, seed_modules):
        seed_modules([("ratios", "6"), ("expressions", "6")], sequence_band="6-8")

        code, output = invoke("path", "build", "s-1", "--grade-band", "6-8")
        assert code == 0, output
        assert "built" in output

        code, output = invoke("path", "show", "s-1")
        assert code == 0, output
        assert "difficulty=1" in output

        code, output = invoke("path", "next", "s-1")
        assert code == 0, output
        assert "Next:" in output

    def test_show_without_path(self):
        code, output = invoke("path", "show", "nobody")
        assert code == 0
        assert "No active path" in output


class TestEventCommands:
    def test_apply_event_json(self, seed_modules):
        seed_modules([("ratios", "6")], sequence_band="6-8")
        invoke("path", "build", "s-2", "--grade-band", "6-8")

        code, output = invoke(
            "event", "apply", "s-2", "practice_answered", "--payload", '{"correct": false, "standards": ["A"]}', "--json"
        )
        assert code == 0, output
        result = json.loads(output)
        assert result["adaptive"]["target_difficulty"] == 1
        assert len(result["adaptive"]["recent_attempts"]) == 1

    def test_invalid_payload(self):
        code, output = invoke("event", "apply", "s-2", "practice_answered", "--payload", "{nope")
        assert code == 1
        assert "Invalid event" in output

    def test_event_without_path(self, cli_store):
        code, output = invoke("event", "apply", "s-3", "lesson_completed")
        assert code == 0
        assert "event recorded only" in output
        assert len(cli_store.query_events("s-3", None, 5)) == 1


class TestInsightsCommand:
    def test_insights_runs(self):
        code, output = invoke("insights", "s-4")
        assert code == 0, output
        assert "Struggling" in output


class TestPlacementCommand:
    def test_score_file(self, tmp_path):
        data = {
            "assessment_id": 3,
            "questions": [
                {
                    "bank_question_id": qid,
                    "prompt": f"Question {qid}",
                    "strand": "number",
                    "options": [
                        {"id": 1, "text": "Right", "is_correct": True},
                        {"id": 2, "text": "Wrong"},
                    ],
                }
                for qid in (1, 2)
            ],
            "responses": [
                {"bank_question_id": 1, "option_id": 1},
                {"bank_question_id": 2, "option_id": 2},
            ],
        }
        path = tmp_path / "placement.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        code, output = invoke("placement", "score", str(path))
        assert code == 0, output
        assert "Mastery: 50%" in output

    def test_unusable_file(self, tmp_path):
        path = tmp_path / "placement.json"
        path.write_text(json.dumps({"assessment_id": 3, "questions": [], "responses": []}), encoding="utf-8")

        code, output = invoke("placement", "score", str(path))
        assert code == 1
        assert "placement_content_missing" in output


class TestConfigCommand:
    def test_config_show(self, cli_store):
        cli_store.set_config_value("adaptive.max_practice_pending", 4)
        code, output = invoke("config", "show")
        assert code == 0, output
        assert "adaptive.max_practice_pending" in output
