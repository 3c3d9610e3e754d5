import tomllib
from pathlib import Path

from fleetplan import __version__
from fleetplan.config import FleetplanConfig, dumps_toml, load_config, save_config


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetplan.toml"
    config = FleetplanConfig.default()
    config.assignment.idle_status = "waiting"
    config.scheduler.auto_assign = False
    config.scheduler.start_empty_phases = False
    config.logging.level = "DEBUG"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.assignment.idle_status == "waiting"
    assert loaded.scheduler.auto_assign is False
    assert loaded.scheduler.start_empty_phases is False
    assert loaded.logging.level == "DEBUG"
    assert loaded.logging.format == config.logging.format


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml")

    assert loaded.assignment.idle_status == "idle"
    assert loaded.scheduler.auto_assign is True
    assert loaded.logging.level == "INFO"


def test_toml_dump_contains_every_section() -> None:
    rendered = dumps_toml(FleetplanConfig.default())

    assert "[assignment]" in rendered
    assert "[scheduler]" in rendered
    assert "[logging]" in rendered
    assert "auto_assign = true" in rendered
    assert tomllib.loads(rendered)["assignment"]["idle_status"] == "idle"


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
