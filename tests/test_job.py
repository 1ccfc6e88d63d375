import csv
from pathlib import Path

import pytest

from tceq_scraper.browser import FetchError, build_detail_url
from tceq_scraper.job import DEFAULT_SETTINGS_PATH, CrawlConfig, build_crawl_config, load_settings, run_once
from tceq_scraper.seeds import ConfigurationError, HeaderMapping
from tceq_scraper.storage import RelationshipRecord, WaterSystemRecord, get_session_factory


def read_fixture(name: str) -> str:
    p = Path(__file__).parent / "fixtures" / name
    return p.read_text(encoding="utf-8")


class FakeFetcher:
    """Serves fixture pages by ws number; unknown numbers answer 404."""

    def __init__(self, pages):
        self.pages = pages
        self.urls = []

    def __call__(self, url: str) -> str:
        self.urls.append(url)
        for ws_number, html in self.pages.items():
            if f"wsnumber={ws_number}" in url:
                return html
        raise FetchError(url, 404, "Not Found")


def make_config(tmp_path, input_path, **overrides) -> CrawlConfig:
    values = dict(
        input_path=input_path,
        output_path=tmp_path / "out.csv",
        database_path=tmp_path / "data" / "water.db",
        request_delay_seconds=0,
    )
    values.update(overrides)
    return CrawlConfig(**values)


def stored(config):
    SessionFactory = get_session_factory(str(config.database_path))
    with SessionFactory() as session:
        systems = {
            record.water_system_no: (record.name, record.state_code, record.is_no)
            for record in session.query(WaterSystemRecord)
        }
        relationships = {
            (record.seller, record.buyer): (record.buyer_name, record.population, record.availability)
            for record in session.query(RelationshipRecord)
        }
    return systems, relationships


def write_seeds(tmp_path, text: str) -> Path:
    path = tmp_path / "seeds.csv"
    path.write_text(text, encoding="utf-8")
    return path


def test_run_once_end_to_end(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX0001,TX,100\n")
    config = make_config(tmp_path, seeds)
    fetcher = FakeFetcher({"TX0001": read_fixture("water_system_detail.html")})

    stats = run_once(config, fetcher=fetcher)

    assert stats.seeds_processed == 1
    assert stats.systems_inserted == 2
    assert stats.relationships_inserted == 1
    systems, relationships = stored(config)
    assert systems == {
        "TX0001": ("Example City Water", "TX", "100"),
        "TX0099": ("Example Buyer Co", "TX", None),
    }
    assert relationships == {("TX0001", "TX0099"): ("Example Buyer Co", "500", "Yes")}

    with (tmp_path / "out.csv").open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[1] == ["TX0001", "Example City Water", "TX0099", "Example Buyer Co", "500", "Yes"]
    assert stats.rows_exported == 1


def test_run_once_is_idempotent(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX0570010,TX,5969\nTX0001,TX,100\n")
    config = make_config(tmp_path, seeds)
    pages = {
        "TX0570010": read_fixture("water_system_many_buyers.html"),
        "TX0001": read_fixture("water_system_detail.html"),
    }

    first = run_once(config, fetcher=FakeFetcher(pages))
    snapshot = stored(config)
    second = run_once(config, fetcher=FakeFetcher(pages))

    assert first.relationships_inserted == 3
    assert second.systems_inserted == 0
    assert second.relationships_inserted == 0
    assert second.systems_skipped == first.systems_inserted + first.systems_skipped
    assert second.relationships_skipped == 3
    assert stored(config) == snapshot


def test_fetch_failure_skips_seed_and_continues(tmp_path, caplog):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX9999,TX,1\nTX0001,TX,100\n")
    config = make_config(tmp_path, seeds)
    fetcher = FakeFetcher({"TX0001": read_fixture("water_system_detail.html")})

    with caplog.at_level("ERROR"):
        stats = run_once(config, fetcher=fetcher)

    assert stats.seeds_failed == 1
    assert stats.seeds_processed == 1
    assert "Row 1" in caplog.text
    assert "404" in caplog.text
    assert "wsnumber=TX9999" in caplog.text


def test_page_without_buyers_table_yields_no_relationships(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX0002,TX,7\n")
    config = make_config(tmp_path, seeds)

    stats = run_once(config, fetcher=FakeFetcher({"TX0002": read_fixture("water_system_no_buyers.html")}))

    assert stats.seeds_processed == 1
    assert stats.relationships_inserted == 0
    systems, relationships = stored(config)
    assert systems == {"TX0002": ("LONE RANCH WSC", "TX", "7")}
    assert relationships == {}


def test_seller_without_name_is_stored_by_number(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX0003,TX,8\n")
    config = make_config(tmp_path, seeds)

    run_once(config, fetcher=FakeFetcher({"TX0003": "<html><body><p>Maintenance</p></body></html>"}))

    systems, _ = stored(config)
    assert systems == {"TX0003": (None, "TX", "8")}


def test_missing_columns_fail_before_any_fetch(tmp_path):
    seeds = write_seeds(tmp_path, "wsnumber,state\nTX0001,TX\n")
    config = make_config(tmp_path, seeds)
    fetcher = FakeFetcher({})

    with pytest.raises(ConfigurationError) as excinfo:
        run_once(config, fetcher=fetcher)

    assert "ws_number, st_code, is_number" in str(excinfo.value)
    assert fetcher.urls == []


def test_detail_url_keeps_trailing_blanks_of_ws_number(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX2270001   ,TX,5969\n")
    config = make_config(tmp_path, seeds)
    fetcher = FakeFetcher({})

    run_once(config, fetcher=fetcher)

    assert fetcher.urls == [
        "https://dww2.tceq.texas.gov/DWW/JSP/WaterSystemDetail.jsp"
        "?tinwsys_is_number=5969&tinwsys_st_code=TX&wsnumber=TX2270001%20%20%20&DWWState=TX"
    ]


def test_build_detail_url_quotes_values():
    url = build_detail_url("https://x/?a={ws_number}&b={state_code}&c={is_number}", "A B&", " TX", "1 ")
    assert url == "https://x/?a=A%20B%26&b=TX&c=1"


def test_snapshots_are_saved_next_to_database(tmp_path):
    seeds = write_seeds(tmp_path, "ws_number,st_code,is_number\nTX0001,TX,100\n")
    config = make_config(tmp_path, seeds, save_snapshots=True)

    stats = run_once(config, fetcher=FakeFetcher({"TX0001": read_fixture("water_system_detail.html")}))

    assert len(stats.snapshots) == 1
    assert stats.snapshots[0].parent == tmp_path / "data" / "snapshots"
    assert "Buyers of Water" in stats.snapshots[0].read_text(encoding="utf-8")


def test_build_crawl_config_from_settings_file(tmp_path):
    settings = load_settings(DEFAULT_SETTINGS_PATH)
    config = build_crawl_config(
        settings,
        input_path=tmp_path / "in.csv",
        output_path=tmp_path / "out.csv",
        header_overrides={"ws_number": "wsnumber", "state_code": None},
        database_path=tmp_path / "w.db",
    )
    assert config.headers == HeaderMapping(ws_number="wsnumber", state_code="st_code", is_number="is_number")
    assert config.request_delay_seconds == 1.0
    assert [section.caption for section in config.layout.sections] == [
        "Water System Detail Information",
        "Buyers of Water",
    ]
    assert config.layout.sections[0].labels == {"Water System Name:": "name"}
    assert config.layout.delimiters == [" - ", "sells to", "/"]
