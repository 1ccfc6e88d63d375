import pytest

from tceq_scraper.seeds import (
    ConfigurationError,
    HeaderMapping,
    Seed,
    default_output_path,
    load_seeds,
    map_headers,
    validate_paths,
)


def test_validate_paths_appends_csv_extension(tmp_path):
    (tmp_path / "seeds.csv").write_text("ws_number,st_code,is_number\n", encoding="utf-8")
    input_path, output_path = validate_paths(tmp_path / "seeds", tmp_path / "out")
    assert input_path == tmp_path / "seeds.csv"
    assert output_path == tmp_path / "out.csv"


def test_validate_paths_reports_every_problem(tmp_path):
    with pytest.raises(ConfigurationError) as excinfo:
        validate_paths(tmp_path / "seeds.txt", tmp_path / "out.json")
    problems = excinfo.value.problems
    assert len(problems) == 2
    assert "Input file is not a csv" in problems[0]
    assert "Output file is not a csv" in problems[1]


def test_validate_paths_missing_input(tmp_path):
    with pytest.raises(ConfigurationError) as excinfo:
        validate_paths(tmp_path / "nope.csv", tmp_path / "out.csv")
    assert "does not exist" in str(excinfo.value)


def test_map_headers_names_all_missing_columns():
    with pytest.raises(ConfigurationError) as excinfo:
        map_headers(["wsnumber", "st_code"], HeaderMapping())
    message = excinfo.value.problems[0]
    assert "ws_number" in message
    assert "is_number" in message
    assert "st_code" not in message


def test_map_headers_is_case_sensitive():
    with pytest.raises(ConfigurationError):
        map_headers(["WS_NUMBER", "st_code", "is_number"], HeaderMapping())


def test_load_seeds_with_custom_headers(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text(
        "\ufefftinwsys_is_number,tinwsys_st_code,wsnumber,extra\n"
        "5969,TX,TX2270001   ,x\n"
        ",,,\n"
        "77,TX,,y\n"
        "100,TX,TX0001,z\n",
        encoding="utf-8",
    )
    mapping = HeaderMapping(ws_number="wsnumber", state_code="tinwsys_st_code", is_number="tinwsys_is_number")

    seeds = load_seeds(path, mapping)

    assert seeds == [
        Seed(row_number=1, ws_number="TX2270001   ", state_code="TX", is_number="5969"),
        Seed(row_number=4, ws_number="TX0001", state_code="TX", is_number="100"),
    ]


def test_load_seeds_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_seeds(path, HeaderMapping())


def test_load_seeds_rejects_non_utf8_file(tmp_path):
    path = tmp_path / "latin1.csv"
    path.write_bytes("ws_number,st_code,is_number\nTX0001,TX,1\nTX0002,TX,2 Caf\u00e9\n".encode("latin-1"))
    with pytest.raises(ConfigurationError) as excinfo:
        load_seeds(path, HeaderMapping())
    assert "not valid UTF-8" in excinfo.value.problems[0]
    assert "UTF-8" in excinfo.value.suggestion


def test_seed_to_system_trims_identifier(seed_csv):
    seeds = load_seeds(seed_csv, HeaderMapping())
    system = seeds[1].to_system(name="CITY OF MESQUITE")
    assert system.ws_number == "TX0570010"
    assert system.state_code == "TX"
    assert system.is_number == "5969"
    assert system.name == "CITY OF MESQUITE"


def test_default_output_path_is_timestamped_csv(tmp_path):
    path = default_output_path(tmp_path)
    assert path.parent == tmp_path
    assert path.name.endswith("_out.csv")
    assert path.name.split("_")[0].isdigit()
