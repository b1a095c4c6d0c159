"""Pytest configuration and shared tile fixtures."""

from pathlib import Path

import pytest

TERRITORY_HEADER = "Id,Name,Code,Lon,Lat,Width,Height,Country"
TERRITORY_ROWS = [
    "0,Centre,C,0,0,2,2,Null Island",          # lat [-1, 1]     lon [-1, 1]
    "1,Overlap,O,0.5,0.5,2,2, Overlapland ",   # lat [-0.5, 1.5] lon [-0.5, 1.5]
    "2,France,FR,2.5,46.5,10,8,France",        # lat [42.5, 50.5] lon [-2.5, 7.5]
    "3,Fiji,FJ,180,-17,20,6,Fiji",             # lon 170..190, wraps the seam
    "4,Bad,B,x,0,1,1,Bad",
    "5,Short,S,1,2",
]

POI_HEADER = "Name,Type,Tile_km,Center_Lat,Center_Lon,Lat_min,Lat_max,Lon_min,Lon_max"
POI_ROWS = [
    "Kourou,Launch Site,30,5.15,-52.65,5.0,5.3,-52.8,-52.5",
    "Baikonur,Launch Site,20,45.9,63.3,45.8,46.0,63.2,63.4",
    "Broken,City,1,0,0,a,b,c,d",
    "Suva,City,40,-18.1,178.4,-18.3,-17.9,178.2,178.6",
    "Kourou,Duplicate,30,5.15,-52.65,5.0,5.3,-52.8,-52.5",
]


def write_csv(path: Path, header: str, rows) -> Path:
    path.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def territory_csv(tmp_path):
    """Territory tiles: four usable rows, two malformed ones."""
    return write_csv(tmp_path / "territories.csv", TERRITORY_HEADER, TERRITORY_ROWS)


@pytest.fixture
def poi_csv(tmp_path):
    """POI tiles with exact bounds; row 2 has unusable bounds."""
    return write_csv(tmp_path / "pois.csv", POI_HEADER, POI_ROWS)


@pytest.fixture
def samples_csv(tmp_path):
    """Two passes over the territory fixture, 60 s apart."""
    rows = [
        "2024-03-01 12:00:00,0.5,0.5",
        "2024-03-01 12:00:10,1.2,1.2",
        "2024-03-01 12:00:20,30.0,30.0",
        "2024-03-01 12:01:20,46.0,2.0",
        "2024-03-01 12:01:30,-17.0,179.0",
        "not a time,1,1",
    ]
    return write_csv(tmp_path / "samples.csv", "Time,Lat,Lon", rows)
