import json
from pathlib import Path

import pytest
from couchtestclass import CouchTestClass
from fakecouch import FakeCouch

from couchsync.cli import cli_main


@pytest.fixture
def config_path(tmp_path: Path, fake_couch: FakeCouch) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"servers": [{"url": fake_couch.url}], "create-target": True}))
    return str(path)


class TestCli(CouchTestClass):
    @pytest.mark.asyncio
    async def test_conflicts(
        self, fake_couch: FakeCouch, config_path: str, capsys: pytest.CaptureFixture
    ) -> None:
        fake_couch.dbs["db1"] = {}
        fake_couch.branch("db1", "p2", [{"n": 1}, {"n": 2}])
        fake_couch.branch("db1", "p1", [{"n": 1}, {"n": 2}])

        self.mark_test_step("Without --force-index the missing index is an error")
        assert await cli_main(["--config", config_path, "conflicts", "db1"]) == 1
        assert "couchsync:" in capsys.readouterr().err

        self.mark_test_step("List, then count")
        assert await cli_main(["--config", config_path, "conflicts", "db1", "--force-index"]) == 0
        assert capsys.readouterr().out.splitlines() == ["p1", "p2"]
        assert await cli_main(["--config", config_path, "conflicts", "db1", "--count"]) == 0
        assert capsys.readouterr().out.strip() == "2"

    @pytest.mark.asyncio
    async def test_replicate_and_tasks(
        self, fake_couch: FakeCouch, config_path: str, capsys: pytest.CaptureFixture
    ) -> None:
        fake_couch.dbs["a"] = {}
        fake_couch.dbs["b"] = {}

        self.mark_test_step("Start a continuous sync from the command line")
        assert await cli_main(
            ["--config", config_path, "replicate", "a", "b", "--continuous", "--sync"]
        ) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("a -> b")
        assert lines[1].endswith("b -> a")

        self.mark_test_step("Both show up as tasks")
        assert await cli_main(["--config", config_path, "tasks"]) == 0
        tasks = capsys.readouterr().out.splitlines()
        assert len(tasks) == 2
        assert all(t.startswith("replication\t") for t in tasks)

        self.mark_test_step("A one-shot replication into a new database")
        assert await cli_main(["--config", config_path, "replicate", "a", "c"]) == 0
        assert capsys.readouterr().out.strip().endswith("a -> c")
        assert "c" in fake_couch.dbs

    @pytest.mark.asyncio
    async def test_replicate_unknown_source(
        self, config_path: str, capsys: pytest.CaptureFixture
    ) -> None:
        assert await cli_main(["--config", config_path, "replicate", "nope", "b"]) == 1
        assert "database unknown" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_requires_command(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            await cli_main(["--config", str(tmp_path / "config.json")])
