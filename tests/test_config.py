import pytest

from bilanzkit.config import default_app_config, load_app_config


def test_load_app_config_full(tmp_path) -> None:
    """Paths are resolved relative to the TOML file."""
    cfg_path = tmp_path / "bilanzkit_config.toml"
    cfg_path.write_text(
        "[ledger]\n"
        'files = ["data/2023.csv", "data/2024.xlsx"]\n'
        'delimiter = ";"\n'
        'encoding = "cp1252"\n'
        "\n"
        "[mapping]\n"
        'file = "config/mapping.json"\n'
        "\n"
        "[kpis]\n"
        "enabled = false\n"
        'file = "config/kpis.toml"\n'
        "\n"
        "[display]\n"
        'mode = "both"\n'
        "decimals = 0\n"
        'output_dir = "reports"\n',
        encoding="utf-8",
    )

    cfg = load_app_config(str(cfg_path))

    base = tmp_path.resolve()
    assert cfg.ledger.files == (base / "data" / "2023.csv", base / "data" / "2024.xlsx")
    assert cfg.ledger.delimiter == ";"
    assert cfg.ledger.encoding == "cp1252"
    assert cfg.mapping_file == base / "config" / "mapping.json"
    assert cfg.kpis_enabled is False
    assert cfg.kpi_file == base / "config" / "kpis.toml"
    assert cfg.display_mode == "both"
    assert cfg.decimals == 0
    assert cfg.output_dir == base / "reports"


def test_load_app_config_defaults(tmp_path) -> None:
    """Every section is optional."""
    cfg_path = tmp_path / "empty.toml"
    cfg_path.write_text("", encoding="utf-8")

    cfg = load_app_config(str(cfg_path))

    assert cfg.ledger.files == ()
    assert cfg.ledger.delimiter is None
    assert cfg.mapping_file is None
    assert cfg.kpis_enabled is True
    assert cfg.kpi_file is None
    assert cfg.display_mode == "table"
    assert cfg.decimals == 2
    assert cfg.output_dir == tmp_path.resolve() / "output"


def test_single_ledger_file_as_string(tmp_path) -> None:
    cfg_path = tmp_path / "cfg.toml"
    cfg_path.write_text('[ledger]\nfiles = "buchungen.csv"\n', encoding="utf-8")

    cfg = load_app_config(str(cfg_path))

    assert cfg.ledger.files == (tmp_path.resolve() / "buchungen.csv",)


def test_load_app_config_errors(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.toml"))

    broken = tmp_path / "broken.toml"
    broken.write_text("[ledger\nfiles = 1", encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_config(str(broken))

    bad_mode = tmp_path / "bad_mode.toml"
    bad_mode.write_text('[display]\nmode = "html"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_config(str(bad_mode))

    bad_files = tmp_path / "bad_files.toml"
    bad_files.write_text("[ledger]\nfiles = [1, 2]\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_config(str(bad_files))


def test_default_app_config() -> None:
    cfg = default_app_config()
    assert cfg.ledger.files == ()
    assert cfg.display_mode == "table"
