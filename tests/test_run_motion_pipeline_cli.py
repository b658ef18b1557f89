import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_help_exits_zero():
    proc = subprocess.run(
        [sys.executable, "-m", "tools.run_motion_pipeline", "--help"],
        capture_output=True,
        text=True,
        cwd=ROOT,
    )
    assert proc.returncode == 0
    assert "usage" in proc.stdout.lower()


def test_null_source_runs_to_max_frames(tmp_path: Path):
    proc = subprocess.run(
        [
            sys.executable,
            "-m",
            "tools.run_motion_pipeline",
            "--prefer",
            "null",
            "--max-frames",
            "3",
            "--out-dir",
            str(tmp_path / "clips"),
            "--motion-sidecar",
            str(tmp_path / "sessions.jsonl"),
        ],
        capture_output=True,
        text=True,
        cwd=ROOT,
    )
    assert proc.returncode == 0, proc.stderr
    assert "Processed 3 frames" in proc.stderr
    # black frames never move, so no clip is written
    assert not (tmp_path / "clips").exists() or not any((tmp_path / "clips").iterdir())


def test_source_failure_exits_nonzero_without_traceback(tmp_path: Path):
    proc = subprocess.run(
        [
            sys.executable,
            "-m",
            "tools.run_motion_pipeline",
            "--device",
            str(tmp_path / "missing.avi"),
            "--out-dir",
            str(tmp_path / "clips"),
        ],
        capture_output=True,
        text=True,
        cwd=ROOT,
    )
    assert proc.returncode == 2
    assert "Video source failed" in proc.stderr
    assert "Traceback" not in proc.stderr
