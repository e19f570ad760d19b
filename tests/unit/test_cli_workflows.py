from pathlib import Path

import pytest
from typer.testing import CliRunner

import stepwise.persistence as persistence
from stepwise import Coordinator
from stepwise.cli import app
from stepwise.persistence import InMemoryRunRepository

FIXTURES = Path(__file__).parent.parent / "fixtures"

FIX_SCRIPT = """
intake: [completed]
reproduce: [completed]
diagnose: [completed]
implement-fix: [completed]
verify: [completed]
commit:
  - completed: abc123
"""


@pytest.fixture
def repo(tmp_path, monkeypatch) -> InMemoryRunRepository:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STEPWISE_CONFIG", raising=False)
    monkeypatch.delenv("STEPWISE_DATABASE_URL", raising=False)
    repository = InMemoryRunRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repository)
    return repository


def test_workflow_list_and_show(repo):
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.stdout
    for name in ("fix", "iterate", "deliberate", "doc-review", "test-audit"):
        assert name in result.stdout

    result = runner.invoke(app, ["workflow", "show", "fix"])
    assert result.exit_code == 0, result.stdout
    assert "reproduce [diagnostician] loop=reproduction" in result.stdout
    assert "failed -> reproduce" in result.stdout

    result = runner.invoke(app, ["workflow", "show", "deliberate"])
    assert "parallel: advocate-for=advocate, advocate-against=advocate" in result.stdout

    missing = runner.invoke(app, ["workflow", "show", "missing"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.stdout


def test_run_with_script_completes_and_is_recorded(repo, tmp_path):
    script = tmp_path / "fix.yaml"
    script.write_text(FIX_SCRIPT)
    runner = CliRunner()

    result = runner.invoke(
        app, ["run", "fix", "--script", str(script), "--input", "issue=42"]
    )

    assert result.exit_code == 0, result.stdout
    assert "completed" in result.stdout
    assert "commit -> completed" in result.stdout

    listing = runner.invoke(app, ["runs", "list"])
    assert "\tfix\tcompleted" in listing.stdout

    run_id = listing.stdout.split("\t")[0]
    shown = runner.invoke(app, ["runs", "show", run_id])
    assert shown.exit_code == 0
    assert "6. commit -> completed" in shown.stdout


def test_run_escalation_exits_nonzero(repo, tmp_path):
    script = tmp_path / "fix.yaml"
    script.write_text("intake: [completed]\nreproduce:\n  - failed: no\n  - failed: no\n")

    result = CliRunner().invoke(app, ["run", "fix", "--script", str(script)])

    assert result.exit_code == 1
    assert "escalated" in result.stdout
    assert "reproduction" in result.stdout


def test_run_prompts_for_answers(repo):
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["run", str(FIXTURES / "release.yaml"), "--script", str(FIXTURES / "release_script.yaml")],
        input="yes\n",
    )

    assert result.exit_code == 0, result.stdout
    assert "Include the breaking change note?" in result.stdout


def test_run_abort_answer_stops_run(repo):
    result = CliRunner().invoke(
        app,
        ["run", str(FIXTURES / "release.yaml"), "--script", str(FIXTURES / "release_script.yaml")],
        input=":abort\n",
    )

    assert result.exit_code == 2
    assert "aborted by operator" in result.stdout


def test_runs_show_missing(repo):
    result = CliRunner().invoke(app, ["runs", "show", "nope"])

    assert result.exit_code == 1
    assert "Run not found" in result.stdout
    assert "No runs found" in CliRunner().invoke(app, ["runs", "list"]).stdout


OVERLAPPING_WORKFLOW = """
steps:
  - id: fix-tests
    parallel:
      - {name: all, delegate: fixer, writes: [tests]}
      - {name: unit, delegate: fixer, writes: [tests/unit]}
    branches: {completed: complete}
"""


def test_malformed_workflow_is_reported(repo, tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text(OVERLAPPING_WORKFLOW)
    runner = CliRunner()

    result = runner.invoke(app, ["run", str(broken)])
    assert result.exit_code == 1
    assert "Invalid workflow" in result.stdout
    assert "tests/unit" in result.stdout

    result = runner.invoke(app, ["workflow", "show", str(broken)])
    assert result.exit_code == 1
    assert "Invalid workflow" in result.stdout


def test_workflow_list_reports_invalid_user_file(repo, tmp_path):
    workflows = tmp_path / "workflows"
    workflows.mkdir()
    (workflows / "half.yaml").write_text("steps:\n  - delegate: writer\n")
    (tmp_path / "stepwise.yaml").write_text(f"workflows_path: {workflows}\n")

    result = CliRunner().invoke(app, ["workflow", "list"])

    assert result.exit_code == 1
    assert "half.yaml" in result.stdout


def test_run_closes_delegates(repo, tmp_path, monkeypatch):
    closed = []

    async def close(self):
        closed.append(self.definition.name)

    monkeypatch.setattr(Coordinator, "close", close)
    script = tmp_path / "fix.yaml"
    script.write_text(FIX_SCRIPT)

    result = CliRunner().invoke(app, ["run", "fix", "--script", str(script)])

    assert result.exit_code == 0, result.stdout
    assert closed == ["fix"]
