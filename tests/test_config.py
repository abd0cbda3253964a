import datetime as dt
from pathlib import Path

import pytest
import requests

from flamegen import config_utils
from flamegen.environment import RunEnvironment
from flamegen.errors import ConfigurationError
from flamegen.run import load_config, load_payload, validate_config
from flamegen.schema import Config, EnvironmentSettings


def test_parse_override_value() -> None:
    assert config_utils.parse_override_value("3") == 3
    assert config_utils.parse_override_value("0.8") == 0.8
    assert config_utils.parse_override_value("True") is True
    assert config_utils.parse_override_value("null") is None
    assert config_utils.parse_override_value("'7'") == "7"
    assert config_utils.parse_override_value("BoxMesh") == "BoxMesh"


def test_apply_overrides_creates_nested_sections() -> None:
    payload = {"flameGenerator": {"maxNumberFlames": 10}}
    config_utils.apply_overrides_dict(
        payload,
        ["flameGenerator.maxNumberFlames=2", "timestepper.domain.faces=32"],
    )
    assert payload["flameGenerator"]["maxNumberFlames"] == 2
    assert payload["timestepper"]["domain"]["faces"] == 32
    with pytest.raises(ConfigurationError):
        config_utils.apply_overrides_dict(payload, ["flameGenerator.maxNumberFlames"])
    with pytest.raises(ConfigurationError):
        config_utils.apply_overrides_dict(payload, ["flameGenerator.maxNumberFlames.deeper=1"])


def test_split_yaml_overrides() -> None:
    overrides, remaining = config_utils.split_yaml_overrides(
        ["--input", "a.yaml", "-yaml::flameGenerator.scaleFactor=0.5", "--progress"]
    )
    assert overrides == ["flameGenerator.scaleFactor=0.5"]
    assert remaining == ["--input", "a.yaml", "--progress"]


def test_read_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "overrides.txt"
    path.write_text("# ladder\n\nflameGenerator.maxNumberFlames=4\n  environment.title=demo \n", encoding="utf-8")
    assert config_utils.read_overrides_file(path) == [
        "flameGenerator.maxNumberFlames=4",
        "environment.title=demo",
    ]


def test_load_payload_applies_overrides(tmp_path: Path, small_ladder, write_config) -> None:
    path = write_config(small_ladder)
    payload = load_payload(path, ["flameGenerator.scaleFactor=0.5"])
    assert payload["flameGenerator"]["scaleFactor"] == 0.5
    cfg = load_config(path)
    assert cfg.flame_generator.max_number_flames == 3
    assert cfg.timestepper.steps_between_checks == 20
    assert cfg.environment.output_directory == tmp_path / "out"


def test_load_payload_rejects_bad_documents(tmp_path: Path) -> None:
    listing = tmp_path / "list.yaml"
    listing.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_payload(listing)
    broken = tmp_path / "broken.yaml"
    broken.write_text("flameGenerator: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_payload(broken)
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_payload(empty) == {}


def test_schema_defaults_and_aliases() -> None:
    cfg = Config.model_validate({"flameGenerator": None, "timestepper": {"max_steps": 10}})
    assert cfg.flame_generator.max_number_flames == 10
    assert cfg.flame_generator.scale_factor == pytest.approx(0.85)
    assert cfg.flame_generator.scale_key == "timestepper.domain.scale"
    assert cfg.timestepper.max_steps == 10
    assert cfg.timestepper.domain.type == "BoxMeshBoundaryCells"
    assert cfg.timestepper.criteria == []
    dumped = cfg.model_dump(by_alias=True)
    assert dumped["flameGenerator"]["maxNumberFlames"] == 10


@pytest.mark.parametrize(
    "payload",
    [
        {"flameGenerator": {"scaleFactor": 0.0}},
        {"flameGenerator": {"maxNumberFlames": -1}},
        {"flameGenerator": {"scaleKey": "..."}},
        {"timestepper": {"domain": {"lower": 1.0, "upper": 1.0}}},
        {"timestepper": {"criteria": [{"type": "Unknown"}]}},
        {"timestepper": {"criteria": [{"type": "FieldBoundCheck", "lower": 2.0, "upper": 1.0}]}},
    ],
)
def test_invalid_configuration(payload) -> None:
    with pytest.raises(ConfigurationError):
        validate_config(payload)


def test_locate_input(tmp_path: Path) -> None:
    path = tmp_path / "input.yaml"
    path.write_text("{}\n", encoding="utf-8")
    assert config_utils.locate_input(str(path)) == path.resolve()
    with pytest.raises(ConfigurationError, match="unable to locate input file"):
        config_utils.locate_input(tmp_path / "missing.yaml")


class _Response:
    def __init__(self, content: bytes, status: int = 200) -> None:
        self.content = content
        self.status = status

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"status {self.status}")


def test_download_input(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return _Response(b"flameGenerator:\n  maxNumberFlames: 1\n")

    monkeypatch.setattr(config_utils.requests, "get", fake_get)
    path = config_utils.download_input("https://example.org/runs/ladder.yaml", tmp_path / "dl")
    assert path == tmp_path / "dl" / "ladder.yaml"
    assert "maxNumberFlames" in path.read_text(encoding="utf-8")
    assert calls == [("https://example.org/runs/ladder.yaml", config_utils.DOWNLOAD_TIMEOUT_S)]


def test_download_failure_is_a_configuration_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_utils.requests, "get", lambda url, timeout: _Response(b"", status=404))
    with pytest.raises(ConfigurationError, match="unable to download"):
        config_utils.download_input("https://example.org/missing.yaml", tmp_path)
    assert not (tmp_path / "missing.yaml").exists()


def test_run_environment_setup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    now = dt.datetime(2024, 5, 1, 12, 30, 15)
    env = RunEnvironment.setup(EnvironmentSettings(), tmp_path / "premixed.yaml", now=now)
    assert env.title == "premixed"
    assert env.output_directory == (tmp_path / "_premixed_2024-05-01T12-30-15").resolve()

    settings = EnvironmentSettings(title="demo", outputDirectory=tmp_path / "runs", tagDirectory=False)
    env = RunEnvironment.setup(settings, None)
    assert env.output_directory == (tmp_path / "runs").resolve()
    stage = env.for_stage(2)
    assert stage.title == "flame_2"
    assert stage.output_directory == env.output_directory / "flame_2"
    env.prepare()
    assert env.flames_directory.is_dir()
    assert not stage.output_directory.exists()
    stage.prepare()
    assert stage.output_directory.is_dir()


def test_tagged_output_in_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    now = dt.datetime(2024, 5, 1, 12, 30, 15)
    env = RunEnvironment.setup(EnvironmentSettings(outputDirectory="."), None, now=now)
    assert env.output_directory == work.resolve().parent / "work_2024-05-01T12-30-15"

    untagged = RunEnvironment.setup(EnvironmentSettings(outputDirectory=".", tagDirectory=False), None)
    assert untagged.output_directory == work.resolve()

    with pytest.raises(ConfigurationError, match="cannot be tagged"):
        RunEnvironment.setup(EnvironmentSettings(outputDirectory="/"), None, now=now)
