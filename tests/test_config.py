from pathlib import Path, PurePosixPath

import pytest

from vps_provisioner.config import (
    DEFAULT_STATE_FILE,
    ConfigError,
    ProvisioningConfig,
    load_config,
    parse_config,
)

BASE = {
    "app": {"user": "ltsfuel"},
    "database": {"name": "ltsfuel_db", "user": "ltsfueluser", "password": "secret"},
}


def test_defaults_are_derived_from_user() -> None:
    cfg = parse_config(BASE).provisioning

    assert cfg.app_dir == PurePosixPath("/home/ltsfuel/ltsfuel-app")
    assert cfg.logs_dir == PurePosixPath("/home/ltsfuel/logs")
    assert cfg.backups_dir == PurePosixPath("/home/ltsfuel/backups")
    assert cfg.app_backups_dir == PurePosixPath("/home/ltsfuel/app-backups")
    assert cfg.app_name == "ltsfuel-app"
    assert cfg.site_name == "ltsfuel"
    assert cfg.port == 3000
    assert cfg.node_version == 20
    assert "software-properties-common" in cfg.essential_packages


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "provision.toml"
    cfg_path.write_text(
        """
        [app]
        user = "shop"
        name = "shop-api"
        directory = "/srv/shop"
        port = 8080
        node_version = 22
        server_name = "shop.example.com"

        [database]
        name = "shop"
        user = "shop_app"
        password = "p@ss:word"

        [system]
        packages = ["curl", "git"]

        [engine]
        state_file = "/tmp/shop-run.json"
        """
    )

    settings = load_config(cfg_path)
    cfg = settings.provisioning

    assert settings.source == cfg_path
    assert settings.state_file == Path("/tmp/shop-run.json")
    assert cfg.app_dir == PurePosixPath("/srv/shop")
    assert cfg.app_name == "shop-api"
    assert cfg.port == 8080
    assert cfg.node_version == 22
    assert cfg.server_name == "shop.example.com"
    assert cfg.essential_packages == ("curl", "git")
    assert cfg.db_password == "p@ss:word"


def test_state_file_defaults() -> None:
    assert parse_config(BASE).state_file == DEFAULT_STATE_FILE


def test_missing_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="does not exist"):
        load_config(tmp_path / "missing.toml")


def test_malformed_toml_is_a_config_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "broken.toml"
    cfg_path.write_text("[app\nuser = ")
    with pytest.raises(ConfigError):
        load_config(cfg_path)


@pytest.mark.parametrize(
    "section, key",
    [("app", "user"), ("database", "name"), ("database", "user"), ("database", "password")],
)
def test_required_keys(section: str, key: str) -> None:
    data = {name: dict(table) for name, table in BASE.items()}
    del data[section][key]
    with pytest.raises(ConfigError, match=f"{section}.{key}"):
        parse_config(data)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"app_user": "Bad User"}, "app.user"),
        ({"db_name": "drop;table"}, "database.name"),
        ({"port": 70000}, "app.port"),
        ({"port": "3000"}, "app.port"),
        ({"node_version": 0}, "app.node_version"),
        ({"app_dir": PurePosixPath("relative/app")}, "app.directory"),
        ({"db_password": "two\nlines"}, "single line"),
        ({"server_name": "evil; return 301"}, "server_name"),
        ({"max_memory": "lots"}, "app.max_memory"),
    ],
)
def test_invalid_values_are_rejected(overrides: dict, message: str) -> None:
    kwargs = {"app_user": "ltsfuel", "db_name": "d", "db_user": "u", "db_password": "p"}
    kwargs.update(overrides)
    with pytest.raises(ConfigError, match=message):
        ProvisioningConfig(**kwargs)


def test_config_is_immutable(config) -> None:
    with pytest.raises(AttributeError):
        config.port = 4000  # type: ignore[misc]


def test_password_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("APP_DB_PASSWORD", "from-env")
    data = {name: dict(table) for name, table in BASE.items()}
    data["database"]["password"] = {"env": "APP_DB_PASSWORD"}

    assert parse_config(data).provisioning.db_password == "from-env"


def test_unresolvable_password_is_a_config_error(monkeypatch) -> None:
    monkeypatch.delenv("APP_DB_PASSWORD", raising=False)
    data = {name: dict(table) for name, table in BASE.items()}
    data["database"]["password"] = {"env": "APP_DB_PASSWORD"}

    with pytest.raises(ConfigError, match="database.password"):
        parse_config(data)


def test_example_config_loads(monkeypatch) -> None:
    monkeypatch.setenv("LTSFUEL_DB_PASSWORD", "LtsFuel2025!")
    example = Path(__file__).resolve().parents[1] / "examples" / "provision.toml"

    cfg = load_config(example).provisioning

    assert cfg.app_user == "ltsfuel"
    assert cfg.db_password == "LtsFuel2025!"
