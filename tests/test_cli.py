import json
from pathlib import Path

import pytest

from flamegen import config_utils, constants, run
from flamegen.errors import ConfigurationError


def _fail_driver(*args, **kwargs):
    raise AssertionError("no stage may be constructed")


def test_version_prints_and_returns(capsys: pytest.CaptureFixture[str]) -> None:
    run.main(["--version"])
    assert capsys.readouterr().out.strip() == constants.VERSION


@pytest.mark.parametrize("flag", ["--info", "-version"])
def test_info_prints_components_and_continues(flag: str, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(ConfigurationError, match="--input must be specified"):
        run.main([flag])
    out = capsys.readouterr().out
    assert out.startswith("Flame Generator\n\tVersion: 0.3.0\n")
    assert "SteadyStateStepper" in out
    assert "MaxIterationsReached" in out


def test_missing_input_argument() -> None:
    with pytest.raises(ConfigurationError):
        run.main([])


def test_nonexistent_input_builds_nothing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(run, "ContinuationDriver", _fail_driver)
    with pytest.raises(ConfigurationError, match="unable to locate input file"):
        run.main(["--input", str(tmp_path / "missing.yaml")])
    assert list(tmp_path.iterdir()) == []


def test_unknown_option_exits_non_zero() -> None:
    with pytest.raises(SystemExit) as excinfo:
        run.main(["--inputs", "a.yaml"])
    assert excinfo.value.code != 0


def test_invalid_scale_key_fails_before_output(tmp_path: Path, small_ladder, write_config) -> None:
    path = write_config(small_ladder)
    with pytest.raises(ConfigurationError, match="scaleKey"):
        run.main(["--input", str(path), "-yaml::flameGenerator.scaleKey=timestepper.domain.radius"])
    assert not (tmp_path / "out").exists()


def test_overrides_from_all_sources(tmp_path: Path, small_ladder, write_config) -> None:
    path = write_config(small_ladder)
    overrides = tmp_path / "overrides.txt"
    overrides.write_text("flameGenerator.scaleFactor=0.5\n", encoding="utf-8")
    run.main(
        [
            "--input",
            str(path),
            "--quiet",
            "--overrides-file",
            str(overrides),
            "--override",
            "timestepper.log.type=stdout",
            "-yaml::flameGenerator.maxNumberFlames=2",
        ]
    )
    out = tmp_path / "out"
    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["flames"] == 2
    assert summary["scale_factor"] == 0.5
    assert not (out / "flame_0" / "convergence.log").exists()

    run_info = json.loads((out / constants.RUN_INFO_FILE).read_text(encoding="utf-8"))
    assert run_info["version"] == constants.VERSION
    assert run_info["overrides"] == [
        "flameGenerator.scaleFactor=0.5",
        "timestepper.log.type=stdout",
        "flameGenerator.maxNumberFlames=2",
    ]
    copied = run.load_payload(out / "ladder.yaml")
    assert copied["flameGenerator"]["maxNumberFlames"] == 2


def test_input_url_is_downloaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, small_ladder, write_config) -> None:
    local = write_config(small_ladder, name="remote.yaml")
    requested = []

    def fake_download(url, destination_dir=None):
        requested.append(url)
        return local

    monkeypatch.setattr(config_utils, "download_input", fake_download)
    records = run.run_flame_generator(
        "https://example.org/remote.yaml",
        overrides=["flameGenerator.maxNumberFlames=1"],
    )
    assert requested == ["https://example.org/remote.yaml"]
    assert len(records) == 1
    assert (tmp_path / "out" / "remote.yaml").exists()
