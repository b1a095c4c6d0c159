"""Tests for configuration, logging setup and the command line."""

import json
import logging

import pytest

from satzone.config import FilterConfig, load_config
from satzone.logger import LOG_FILE_NAME, setup_logging
from satzone.main import main


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def write_config(tmp_path, data):
    path = tmp_path / "satzone.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestConfig:
    """Tests for the JSON config file."""

    def test_defaults(self):
        cfg = load_config(None)
        assert cfg == FilterConfig()
        assert (cfg.cell_deg, cfg.eps, cfg.earth_radius_km) == (1.0, 1e-12, 6371.0)
        assert (cfg.min_workers, cfg.max_workers) == (2, 8)

    def test_values_from_file(self, tmp_path):
        cfg = load_config(write_config(tmp_path, {"max_workers": 4, "poi_csv": "p.csv"}))
        assert cfg.max_workers == 4
        assert cfg.poi_csv == "p.csv"
        assert cfg.pass_gap_s == 30.0

    def test_unknown_key(self, tmp_path):
        with pytest.raises(KeyError, match="max_worker"):
            load_config(write_config(tmp_path, {"max_worker": 4}))

    @pytest.mark.parametrize(
        "data",
        [{"cell_deg": 0.0}, {"cell_deg": 7.0}, {"min_workers": 1}, {"max_workers": 16}],
    )
    def test_invalid_values(self, tmp_path, data):
        with pytest.raises(ValueError):
            load_config(write_config(tmp_path, data))

    @pytest.mark.parametrize(
        "data",
        [{"cell_deg": "x"}, {"max_workers": 4.5}, {"min_workers": True}, {"poi_csv": 3}],
    )
    def test_wrong_types(self, tmp_path, data):
        with pytest.raises(ValueError, match="wrong type"):
            load_config(write_config(tmp_path, data))

    def test_not_an_object(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(write_config(tmp_path, [1, 2]))


class TestLogging:
    """Tests for logging setup."""

    def test_log_file(self, tmp_path):
        setup_logging("debug", tmp_path / "logs")
        logging.getLogger("satzone.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "[INFO] satzone.test: hello" in text
        assert logging.getLogger().level == logging.DEBUG


class TestCommandLine:
    """End-to-end runs of the satzone command."""

    def test_territory(self, territory_csv, samples_csv, tmp_path):
        out = tmp_path / "out.csv"
        code = main([
            "--log-level", "WARNING", "--workers", "2",
            "territory", "--tiles", str(territory_csv),
            "--samples", str(samples_csv), "--out", str(out),
        ])
        assert code == 0
        lines = out.read_text(encoding="utf-8").split("\n")
        assert lines[0] == "Time,Lat,Lon,Region,Label"
        assert lines[1] == "2024-03-01 12:00:00,0.500000,0.500000,0,Null Island"
        assert lines[2].endswith(",1,Overlapland")
        assert lines[3] == ""
        assert lines[4].endswith(",2,France")
        assert lines[5].endswith(",3,Fiji")

    def test_territory_single_country(self, territory_csv, samples_csv, tmp_path):
        out = tmp_path / "out.csv"
        main([
            "--log-level", "WARNING",
            "territory", "--tiles", str(territory_csv), "--samples", str(samples_csv),
            "--country", "France", "--out", str(out),
        ])
        rows = [l for l in out.read_text(encoding="utf-8").splitlines()[1:] if l]
        assert len(rows) == 1
        assert rows[0].endswith("France")

    def test_tiles_from_config(self, territory_csv, samples_csv, tmp_path):
        cfg = write_config(tmp_path, {"territory_csv": str(territory_csv)})
        out = tmp_path / "out.csv"
        code = main([
            "--config", str(cfg), "--log-level", "WARNING",
            "territory", "--samples", str(samples_csv), "--out", str(out),
        ])
        assert code == 0
        assert out.exists()

    def test_poi_with_range(self, poi_csv, tmp_path):
        samples = tmp_path / "s.csv"
        samples.write_text("Time,Lat,Lon\n2024-03-01 00:00:00,-18.0,178.4\n", encoding="utf-8")
        out = tmp_path / "out.csv"
        code = main([
            "--log-level", "WARNING",
            "poi", "--tiles", str(poi_csv), "--samples", str(samples),
            "--name", "Suva", "--out", str(out),
        ])
        assert code == 0
        header, row = out.read_text(encoding="utf-8").splitlines()
        assert header == "Time,Lat,Lon,Region,Name,Type,Range_km,Bearing"
        fields = row.split(",")
        assert fields[3:6] == ["2", "Suva", "City"]
        assert float(fields[6]) == pytest.approx(11.1, abs=0.1)

    def test_add_poi(self, poi_csv, capsys):
        code = main([
            "--log-level", "WARNING",
            "add-poi", "--tiles", str(poi_csv), "--name", "X", "--type", "City",
            "--lat", "10", "--lon", "20", "--tile-km", "10",
        ])
        assert code == 0
        assert "Added 'X'" in capsys.readouterr().out
        assert poi_csv.read_text(encoding="utf-8").splitlines()[-1].startswith("X,City,")

    def test_add_poi_rejects_bad_input(self, poi_csv):
        before = poi_csv.read_text(encoding="utf-8")
        code = main([
            "--log-level", "CRITICAL",
            "add-poi", "--tiles", str(poi_csv), "--name", "X",
            "--lat", "95", "--lon", "20", "--tile-km", "10",
        ])
        assert code == 2
        assert poi_csv.read_text(encoding="utf-8") == before

    def test_geojson(self, territory_csv, tmp_path):
        out = tmp_path / "tiles.geojson"
        code = main([
            "--log-level", "WARNING",
            "geojson", "--tiles", str(territory_csv), "--out", str(out),
        ])
        assert code == 0
        collection = json.loads(out.read_text(encoding="utf-8"))
        assert len(collection["features"]) == 4
        assert collection["features"][3]["properties"]["wraps"] is True

    def test_missing_tiles(self, samples_csv, tmp_path):
        code = main([
            "--log-level", "CRITICAL",
            "territory", "--tiles", str(tmp_path / "nope.csv"), "--samples", str(samples_csv),
        ])
        assert code == 1

    def test_no_tiles_configured(self, samples_csv):
        code = main(["--log-level", "CRITICAL", "territory", "--samples", str(samples_csv)])
        assert code == 1

    def test_config_with_wrong_type_exits_cleanly(self, territory_csv, samples_csv, tmp_path):
        cfg = write_config(tmp_path, {"cell_deg": "x"})
        code = main([
            "--config", str(cfg), "--log-level", "CRITICAL",
            "territory", "--tiles", str(territory_csv), "--samples", str(samples_csv),
        ])
        assert code == 1
