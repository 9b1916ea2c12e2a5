from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import pytest

from org_import.config.loader import ConfigError, load_config, parse_config
from org_import.models.config_models import BatchConfig, HierarchyLimits
from org_import.models.hierarchy import HierarchyNode
from org_import.services.hierarchy import validate_move


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.organization_id == "org-1"
    assert cfg.error_log_dir == "./logs"
    assert cfg.batch.retry_attempts == 1
    assert cfg.batch.delay_between_batches == 0
    # unspecified keys keep their defaults
    assert cfg.batch.backoff_factor == BatchConfig().backoff_factor
    assert cfg.hierarchy == HierarchyLimits(max_depth=10)
    assert cfg.database.host == "localhost"
    assert cfg.database.port == 5432
    assert cfg.database.dsn is None


def test_minimal_config_uses_defaults():
    cfg = parse_config({"organization_id": "acme"})
    assert cfg.batch == BatchConfig()
    assert cfg.hierarchy == HierarchyLimits()
    assert cfg.error_log_dir == "./logs"


def test_load_config_missing_file(temp_workdir: Path):
    missing = temp_workdir / "config" / "not_exists.yml"
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(missing)


def test_load_config_invalid_yaml(write_config: Path):
    write_config.write_text("organization_id: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(write_config)


def test_load_config_missing_required(write_config: Path):
    text = write_config.read_text(encoding="utf-8").replace("organization_id: org-1\n", "")
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value) and "required property" in str(e.value)


def test_load_config_extra_field(write_config: Path):
    text = write_config.read_text(encoding="utf-8") + "\nextra_field: not_allowed\n"
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(write_config)


def test_load_config_empty_file(write_config: Path):
    write_config.write_text("", encoding="utf-8")
    with pytest.raises(ConfigError, match="required property"):
        load_config(write_config)


@pytest.mark.parametrize(
    "section,values,location",
    [
        ("batch", {"retry_attempts": -1}, "batch.retry_attempts"),
        ("batch", {"backoff_factor": 0.5}, "batch.backoff_factor"),
        ("batch", {"unknown": 1}, "batch"),
        ("hierarchy", {"max_depth": 0}, "hierarchy.max_depth"),
        ("database", {"port": "5432"}, "database.port"),
    ],
)
def test_section_errors_name_the_location(section, values, location):
    with pytest.raises(ConfigError) as e:
        parse_config({"organization_id": "acme", section: values})
    assert f"config validation failed: {location}: " in str(e.value)


def test_min_batch_size_must_not_exceed_max():
    with pytest.raises(ConfigError, match="min_batch_size"):
        parse_config({"organization_id": "acme", "batch": {"min_batch_size": 50, "max_batch_size": 20}})


def test_non_mapping_root():
    with pytest.raises(ConfigError, match="mapping"):
        parse_config(["organization_id"])  # type: ignore[arg-type]


def test_hierarchy_limits_feed_move_validation():
    cfg = parse_config({"organization_id": "acme", "hierarchy": {"max_depth": 1}})
    nodes = [HierarchyNode("A", None), HierarchyNode("B", "A"), HierarchyNode("C", None)]
    result = validate_move("C", "B", nodes, **asdict(cfg.hierarchy))
    assert not result.is_valid
