"""Unit tests for the analysis config tables."""

from types import MappingProxyType

import pytest

from signalwatch.analysis.config import DEFAULT_CONFIG, AnalysisConfig
from signalwatch.analysis.types import SourceType

pytestmark = pytest.mark.unit


def test_default_config_builds():
    config = AnalysisConfig()
    assert config.source_tier("Reuters") == 1
    assert config.source_type("Bellingcat") == SourceType.INTEL
    assert config.source_tier("Some Blog") == config.default_source_tier
    assert config.source_type("Some Blog") == SourceType.OTHER


def test_default_tables_are_read_only():
    assert isinstance(DEFAULT_CONFIG.source_tiers, MappingProxyType)
    with pytest.raises(TypeError):
        DEFAULT_CONFIG.source_tiers["Reuters"] = 4


def test_source_tables_can_be_overridden():
    config = AnalysisConfig(
        source_tiers={"Local Wire": 1}, source_types={"Local Wire": SourceType.WIRE}
    )
    assert config.source_tier("Local Wire") == 1
    assert config.source_tier("Reuters") == config.default_source_tier
    assert config.source_type("Local Wire") == SourceType.WIRE
