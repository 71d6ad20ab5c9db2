from __future__ import annotations

from datetime import datetime

import pytest

from casetrack.config import Settings
from support import UTC, FixedClock


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        sla_rules_path=tmp_path / "sla_rules.yaml",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'casetrack.db'}",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 10, 19, 12, 0, tzinfo=UTC))
