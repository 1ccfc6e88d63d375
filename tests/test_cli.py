import run_once


def test_parser_defaults():
    args = run_once.build_parser().parse_args(["-i", "seeds.csv"])
    assert args.input == "seeds.csv"
    assert args.output is None
    assert args.header_ws is None
    assert args.database is None


def test_main_reports_configuration_errors(tmp_path, caplog):
    seeds = tmp_path / "seeds.csv"
    seeds.write_text("a,b\n1,2\n", encoding="utf-8")

    code = run_once.main(
        [
            "-i",
            str(seeds),
            "-o",
            str(tmp_path / "out.txt"),
            "--database",
            str(tmp_path / "w.db"),
        ]
    )

    assert code == 2
    assert "Output file is not a csv" in caplog.text


def test_main_names_missing_headers(tmp_path, caplog):
    seeds = tmp_path / "seeds.csv"
    seeds.write_text("wsnumber,st_code,is_number\nTX0001,TX,1\n", encoding="utf-8")

    code = run_once.main(["-i", str(seeds), "-o", str(tmp_path / "out"), "--database", str(tmp_path / "w.db")])

    assert code == 2
    assert "Missing headers from input file: ws_number" in caplog.text
