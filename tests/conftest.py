from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


@pytest.fixture
def detail_html() -> str:
    return read_fixture("water_system_detail.html")


@pytest.fixture
def seed_csv(tmp_path):
    path = tmp_path / "seeds.csv"
    path.write_text(
        "ws_number,st_code,is_number\n"
        "TX0001,TX,100\n"
        "TX0570010   ,TX,5969\n",
        encoding="utf-8",
    )
    return path
