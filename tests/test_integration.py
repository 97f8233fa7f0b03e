"""End-to-end integration tests for projtrack.

This module runs the CLI in a subprocess as a real user would, ensuring
the parser, manager, lifecycle rules and JSON storage work together.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent


class TestIntegration:
    """E2E integration tests for the complete projtrack workflow."""

    @pytest.fixture
    def temp_db(self, tmp_path):
        """Path for a database file the CLI will create."""
        return str(tmp_path / "projects.json")

    def run_cli(self, args, db_path, check=True):
        """Run the CLI with given arguments.

        Args:
            args: List of command arguments
            db_path: Path to the database file
            check: Whether to check for non-zero exit codes

        Returns:
            subprocess.CompletedProcess instance
        """
        env = {**os.environ, "PROJTRACK_DB_PATH": db_path}
        result = subprocess.run(
            [sys.executable, "-m", "projtrack"] + args,
            capture_output=True,
            text=True,
            check=False,
            env=env,
            cwd=str(REPO_ROOT),
        )
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, result.args, result.stdout, result.stderr
            )
        return result

    @staticmethod
    def created_id(stdout):
        """Pull the id out of a '... added/created: <id> <title>' line."""
        return stdout.split(":", 1)[1].split()[0]

    def test_complete_workflow(self, temp_db):
        """Create a project, track tasks and milestones, archive, delete."""
        result = self.run_cli(
            ["create", "Website roadmap", "--start", "2026-03-01", "--priority", "high",
             "--tag", "web"],
            temp_db,
        )
        assert "Project created:" in result.stdout
        project_id = self.created_id(result.stdout)

        result = self.run_cli(["task-add", project_id, "Design", "--weight", "20"], temp_db)
        design_id = self.created_id(result.stdout)
        self.run_cli(["task-add", project_id, "Build", "--weight", "30"], temp_db)
        result = self.run_cli(["task-add", project_id, "Ship", "--weight", "50"], temp_db)
        ship_id = self.created_id(result.stdout)

        self.run_cli(["task-done", project_id, design_id], temp_db)
        result = self.run_cli(["task-done", project_id, ship_id], temp_db)
        assert "(project progress 70%)" in result.stdout

        result = self.run_cli(["milestone-add", project_id, "Beta", "--due", "2026-04-01"], temp_db)
        milestone_id = self.created_id(result.stdout)
        result = self.run_cli(["milestone-done", project_id, milestone_id], temp_db)
        assert "completed" in result.stdout

        result = self.run_cli(["list"], temp_db)
        assert "Website roadmap" in result.stdout
        assert "70%" in result.stdout

        self.run_cli(["archive", project_id], temp_db)
        result = self.run_cli(["list"], temp_db)
        assert "No projects found." in result.stdout

        result = self.run_cli(["delete", project_id], temp_db)
        assert f"Project {project_id} deleted." in result.stdout

    def test_data_persists_as_json(self, temp_db):
        result = self.run_cli(["create", "Persisted", "--start", "2026-01-01"], temp_db)
        project_id = self.created_id(result.stdout)

        with open(temp_db, "r") as f:
            data = json.load(f)

        assert data["version"] == 1
        assert data["projects"][project_id]["title"] == "Persisted"
        assert data["projects"][project_id]["progress"] == 0

    def test_status_and_stats(self, temp_db):
        result = self.run_cli(["create", "Late", "--start", "2020-01-01", "--due", "2020-02-01"], temp_db)
        project_id = self.created_id(result.stdout)

        result = self.run_cli(["stats"], temp_db)
        assert "Projects: 1 (1 active)" in result.stdout
        assert "Overdue: 1" in result.stdout

        self.run_cli(["status", project_id, "completed"], temp_db)
        result = self.run_cli(["stats"], temp_db)
        assert "Overdue: 0" in result.stdout
        assert "completed: 1" in result.stdout

    def test_labels(self, temp_db):
        self.run_cli(["create", "Tagged", "--start", "2026-01-01", "--tag", "web",
                      "--category", "engineering"], temp_db)

        result = self.run_cli(["categories"], temp_db)
        assert result.stdout.splitlines() == ["general", "engineering"]

        result = self.run_cli(["tags", "--remove", "web"], temp_db)
        assert "(1 project(s) updated)" in result.stdout
        result = self.run_cli(["tags"], temp_db)
        assert result.stdout == ""

    def test_unknown_project_exits_nonzero(self, temp_db):
        result = self.run_cli(["show", "missing"], temp_db, check=False)
        assert result.returncode == 1
        assert "Error: project missing not found" in result.stderr

    def test_delete_missing_project(self, temp_db):
        result = self.run_cli(["delete", "missing"], temp_db, check=False)
        assert result.returncode == 1
        assert "Error: Project missing not found." in result.stderr

    def test_invalid_weight_rejected(self, temp_db):
        result = self.run_cli(["create", "P", "--start", "2026-01-01"], temp_db)
        project_id = self.created_id(result.stdout)

        result = self.run_cli(["task-add", project_id, "Heavy", "--weight", "500"], temp_db, check=False)
        assert result.returncode == 1
        assert "weight" in result.stderr

    def test_corrupted_database_reports_error(self, temp_db):
        Path(temp_db).write_text("{not json")

        result = self.run_cli(["list"], temp_db, check=False)
        assert result.returncode == 1
        assert "Error:" in result.stderr

    def test_no_command_prints_help(self, temp_db):
        result = self.run_cli([], temp_db, check=False)
        assert result.returncode == 1
        assert "usage:" in result.stdout
