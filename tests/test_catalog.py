import json

import pytest
from pydantic import ValidationError

from tourguide.places.catalog import load_catalog


def test_empty_path_means_no_catalog():
    assert load_catalog("") == []


def test_missing_file(tmp_path):
    assert load_catalog(str(tmp_path / "nope.json")) == []


def test_loads_pois(tmp_path):
    path = tmp_path / "pois.json"
    path.write_text(
        json.dumps(
            [
                {"id": "fountain", "name": "Old Fountain", "latitude": 41.9, "longitude": 12.48},
                {
                    "id": "arch",
                    "name": "Triumphal Arch",
                    "category": "monument",
                    "latitude": 41.89,
                    "longitude": 12.49,
                    "summary": "Built for a victory.",
                },
            ]
        )
    )
    pois = load_catalog(str(path))
    assert [p.id for p in pois] == ["fountain", "arch"]
    assert pois[0].category == "point_of_interest"
    assert pois[1].summary == "Built for a victory."


def test_invalid_catalog_raises(tmp_path):
    path = tmp_path / "pois.json"
    path.write_text(json.dumps([{"id": "x"}]))
    with pytest.raises(ValidationError):
        load_catalog(str(path))
