"""
Tests for the webprobe command line
"""

import json

import pytest

from webprobe.cli import create_parser, main
from webprobe.research.source_intelligence import SourceIntelligence
from webprobe.research.types import VisitOutcome


@pytest.fixture
def state_file(tmp_path):
    intel = SourceIntelligence()
    for _ in range(5):
        intel.update_source_intelligence("reddit.com", VisitOutcome("https://reddit.com/r/acme", False))
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"source_intelligence": intel.export_state()}))
    return path


class TestParser:
    def test_commands(self):
        parser = create_parser()

        args = parser.parse_args(["plan", "What is Acme's pricing?", "--mode", "fast"])
        assert args.command == "plan"
        assert args.mode == "fast"

        args = parser.parse_args(["rank", "a.com", "b.com"])
        assert args.domains == ["a.com", "b.com"]

    def test_unknown_mode_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["plan", "q", "--mode", "warp"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "webprobe" in capsys.readouterr().out


class TestModesCommand:
    def test_json(self, capsys):
        assert main(["modes", "--json"]) == 0

        presets = json.loads(capsys.readouterr().out)
        assert set(presets) == {"fast", "standard", "deep", "compliance", "simulation"}
        assert presets["standard"]["max_pages"] == 30

    def test_table(self, capsys):
        assert main(["modes"]) == 0
        assert "Operator modes" in capsys.readouterr().out


class TestRankCommand:
    def test_json(self, capsys):
        assert main(["rank", "reddit.com", "github.com", "pinterest.com", "--json"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert [s["domain"] for s in output["ranked"]] == ["github.com", "reddit.com"]
        assert output["avoided"] == ["pinterest.com"]

    def test_learned_state(self, capsys, state_file):
        code = main(["rank", "reddit.com", "github.com", "--state", str(state_file), "--json"])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert [s["domain"] for s in output["ranked"]] == ["github.com"]
        assert output["avoided"] == ["reddit.com"]

    def test_missing_state_file(self, tmp_path, capsys):
        assert main(["rank", "github.com", "--state", str(tmp_path / "missing.json")]) == 1


class TestPlanCommand:
    def test_json(self, capsys):
        assert main(["plan", "What is Acme's pricing?", "--domain", "acme.com", "--json"]) == 0

        plan = json.loads(capsys.readouterr().out)
        assert plan["is_valid"] is True
        assert plan["primary_questions"][0]["category"] == "pricing"
        assert plan["target_domains"][0]["domain"] == "acme.com"
        assert plan["target_domains"][0]["expected_tier"] == 1

    def test_invalid_plan_exit_code(self, capsys):
        code = main(["plan", "What is Acme's pricing?", "--max-pages", "0", "--json"])

        assert code == 1
        plan = json.loads(capsys.readouterr().out)
        assert "Page budget too low" in plan["validation_errors"]

    def test_table(self, capsys):
        assert main(["plan", "Who are Acme's competitors?", "--mode", "deep"]) == 0

        out = capsys.readouterr().out
        assert "Target domains" in out
        assert "Execution paths" in out

    def test_bad_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yaml"), "modes"]) == 2
