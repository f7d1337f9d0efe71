import json
import stat
import sys
from pathlib import Path

import pytest

FAKE_TOOL = """#!{python}
import json
import os
import sys

args = sys.argv[1:]
record = os.environ.get("FAKE_RECORD")

if args == ["--version"]:
    sys.stdout.write(os.environ.get("FAKE_VERSION_OUTPUT", "osbuild 124\\n"))
    sys.exit(int(os.environ.get("FAKE_EXIT", "0")))

if os.environ.get("FAKE_SKIP_STDIN"):
    sys.exit(0)

manifest = sys.stdin.buffer.read()
if record:
    with open(record, "w") as fh:
        json.dump({{"args": args, "manifest": manifest.decode(), "env": dict(os.environ)}}, fh)

if "--monitor-fd" in args:
    fd = int(args[args.index("--monitor-fd") + 1])
    progress_file = os.environ.get("FAKE_PROGRESS_FILE")
    if progress_file:
        with open(progress_file, "rb") as fh:
            os.write(fd, fh.read())

sys.stderr.write(os.environ.get("FAKE_STDERR", ""))
sys.stderr.write("e" * int(os.environ.get("FAKE_STDERR_BYTES", "0")))
if "--json" in args:
    sys.stdout.write(os.environ.get("FAKE_STDOUT", '{{"success": true}}'))
sys.exit(int(os.environ.get("FAKE_EXIT", "0")))
"""


@pytest.fixture
def fake_tool(tmp_path: Path) -> Path:
    """Executable named like the real build tool, driven by FAKE_* variables."""
    bindir = tmp_path / "bin"
    bindir.mkdir()
    tool = bindir / "osbuild"
    tool.write_text(FAKE_TOOL.format(python=sys.executable))
    tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return tool


@pytest.fixture
def recorded(tmp_path: Path, monkeypatch):
    """Return a reader for the invocation the fake tool recorded."""
    path = tmp_path / "record.json"
    monkeypatch.setenv("FAKE_RECORD", str(path))

    def _read() -> dict:
        return json.loads(path.read_text())

    return _read
