import io
import logging
from pathlib import Path

import pytest

from flamegen import provenance
from flamegen.logs import FileLog, MemoryLog, StdOutLog, make_log
from flamegen.runtime import ColumnarBuffer, ConvergenceHistory, ProgressReporter, format_exception_short, log_stage
from flamegen.runtime.progress import _format_eta


def test_columnar_buffer_backfills_new_columns() -> None:
    buffer = ColumnarBuffer(["a"])
    buffer.append_row({"a": 1})
    buffer.append_row({"a": 2, "b": "x"})
    assert buffer.columns() == ["a", "b"]
    assert buffer.column("b") == [None, "x"]
    assert buffer.last() == {"a": 2, "b": "x"}
    assert buffer.to_table().num_rows == 2
    assert buffer.to_frame()["a"].tolist() == [1, 2]
    buffer.clear()
    assert len(buffer) == 0 and buffer.last() is None


def test_convergence_history_rows() -> None:
    history = ConvergenceHistory()
    history.record(step=10, ceiling=10, residual_rms=0.5, converged=False, exhausted=False)
    history.record(step=20, ceiling=20, residual_rms=1.0e-9, converged=True, exhausted=False)
    frame = history.to_frame()
    assert frame.columns.tolist() == ["pass", "step", "ceiling", "residual_rms", "converged", "exhausted"]
    assert frame["pass"].tolist() == [1, 2]


def test_progress_reporter_lines() -> None:
    stream = io.StringIO()
    reporter = ProgressReporter(2, enabled=True, stream=stream)
    reporter.update(0, 1.0, "converged")
    reporter.update(1, 0.8, "exhausted")
    reporter.update(1, 0.8, "exhausted")
    lines = stream.getvalue().splitlines()
    assert len(lines) == 2
    assert "flame 1/2 scale=1 converged" in lines[0]
    assert " 100.0% flame 2/2 scale=0.8 exhausted" in lines[1]

    silent = io.StringIO()
    ProgressReporter(2, enabled=False, stream=silent).update(0, 1.0, "converged")
    assert silent.getvalue() == ""


def test_format_eta() -> None:
    assert _format_eta(5.0) == "ETA 5s"
    assert _format_eta(90.0) == "ETA 1.5m"
    assert _format_eta(7200.0) == "ETA 2.0h"
    assert _format_eta(float("nan")) == "ETA ?"


def test_log_helpers(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("flamegen.test")
    with caplog.at_level(logging.INFO, logger="flamegen.test"):
        log_stage(logger, "construct", stage=2, scale="0.64")
        log_stage(logger, "ladder_complete")
        log_stage(None, "ignored")
    assert "flame=2 stage=construct scale=0.64" in caplog.text
    assert "stage=ladder_complete" in caplog.text
    assert format_exception_short(ValueError("bad")) == "ValueError: bad"


def test_convergence_logs(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    file_log = make_log("file", directory=tmp_path / "flame_0", name="convergence.log")
    assert isinstance(file_log, FileLog)
    assert not file_log.path.exists()
    file_log.printf("Convergence reached after %d steps", 40)
    file_log.printf("done\n")
    file_log.close()
    assert file_log.path.read_text(encoding="utf-8") == "Convergence reached after 40 steps\ndone\n"

    stdout_log = make_log("stdout", prefix="[flame_0] ")
    assert isinstance(stdout_log, StdOutLog)
    with caplog.at_level(logging.INFO, logger="flamegen.convergence"):
        stdout_log.printf("residual %.1e", 1.0e-3)
    assert "[flame_0] residual 1.0e-03" in caplog.text

    assert make_log(None) is None
    with pytest.raises(ValueError):
        make_log("file")
    with pytest.raises(ValueError):
        make_log("syslog")
    memory = MemoryLog()
    memory.printf("plain %")
    assert memory.messages == ["plain %"]


def test_gather_run_provenance(tmp_path: Path) -> None:
    path = tmp_path / "ladder.yaml"
    path.write_text("flameGenerator: {}\n", encoding="utf-8")
    info = provenance.gather_run_provenance(
        path,
        overrides=["flameGenerator.maxNumberFlames=2"],
        package_dists=["numpy", "not-a-real-distribution"],
    )
    assert info["program"] == "Flame Generator"
    assert info["input"]["exists"] is True
    assert len(info["input"]["sha256"]) == 64
    assert info["packages"]["not-a-real-distribution"] is None
    assert info["packages"]["numpy"]
    assert info["overrides"] == ["flameGenerator.maxNumberFlames=2"]
    assert info["world_size"] == 1
    assert provenance.gather_run_provenance(None)["input"] is None
