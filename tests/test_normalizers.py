"""
Tests for payload normalization.

This module tests:
- ParseResult decoding of Overpass and search payloads
- Overpass -> GeoJSON conversion
- Point-only geospatial normalization
- Hourly rate and opening hours extraction
- Search result normalization
"""

from decimal import Decimal

import pytest

from parknav.normalizers import (
    Malformed,
    Ok,
    extract_hourly_rate,
    extract_hours,
    normalize_geospatial,
    normalize_search_results,
    overpass_to_geojson,
    parse_overpass_payload,
    parse_search_payload,
)


def overpass_payload():
    """A parking node, a closed parking way with its vertices, and a relation."""
    return {
        "version": 0.6,
        "elements": [
            {
                "type": "node",
                "id": 101,
                "lat": 37.7601,
                "lon": -122.4148,
                "tags": {
                    "amenity": "parking",
                    "name": "Mission Garage",
                    "fee": "yes",
                    "capacity": "120",
                },
            },
            {
                "type": "node",
                "id": 102,
                "lat": 37.7611,
                "lon": -122.4158,
                "tags": {"amenity": "parking"},
            },
            {
                "type": "way",
                "id": 201,
                "nodes": [1, 2, 3, 1],
                "tags": {"amenity": "parking", "name": "Surface Lot"},
            },
            {"type": "node", "id": 1, "lat": 37.0, "lon": -122.0},
            {"type": "node", "id": 2, "lat": 37.1, "lon": -122.0},
            {"type": "node", "id": 3, "lat": 37.1, "lon": -122.1},
            {
                "type": "relation",
                "id": 301,
                "members": [],
                "tags": {"amenity": "parking"},
            },
        ],
    }


class TestParsePayloads:
    """Tests for ParseResult decoding."""

    def test_overpass_ok(self):
        result = parse_overpass_payload({"elements": [{"type": "node"}]})
        assert isinstance(result, Ok)
        assert result.value == [{"type": "node"}]

    def test_overpass_missing_elements_is_malformed(self):
        result = parse_overpass_payload({"remark": "runtime error"})
        assert isinstance(result, Malformed)
        assert "elements" in result.reason

    def test_overpass_non_object_is_malformed(self):
        assert isinstance(parse_overpass_payload(["node"]), Malformed)

    def test_search_missing_results_is_empty(self):
        assert parse_search_payload({"search_metadata": {"status": "Success"}}) == Ok([])

    def test_search_nested_local_results(self):
        result = parse_search_payload({"local_results": {"places": [{"title": "Lot"}]}})
        assert result == Ok([{"title": "Lot"}])

    def test_search_non_object_is_malformed(self):
        assert isinstance(parse_search_payload("oops"), Malformed)


class TestOverpassToGeojson:
    """Tests for overpass_to_geojson."""

    def test_node_becomes_point(self):
        features = overpass_to_geojson(overpass_payload()["elements"])
        node = next(f for f in features if f["id"] == "node/101")
        assert node["geometry"] == {"type": "Point", "coordinates": [-122.4148, 37.7601]}
        assert node["properties"]["tags"]["name"] == "Mission Garage"

    def test_closed_way_becomes_polygon(self):
        features = overpass_to_geojson(overpass_payload()["elements"])
        way = next(f for f in features if f["id"] == "way/201")
        assert way["geometry"]["type"] == "Polygon"

    def test_way_vertices_are_not_emitted(self):
        features = overpass_to_geojson(overpass_payload()["elements"])
        ids = {f["id"] for f in features}
        assert "node/1" not in ids
        assert "node/2" not in ids

    def test_relation_has_no_geometry(self):
        features = overpass_to_geojson(overpass_payload()["elements"])
        relation = next(f for f in features if f["id"] == "relation/301")
        assert relation["geometry"] is None

    def test_way_without_vertices_has_no_geometry(self):
        features = overpass_to_geojson([
            {"type": "way", "id": 5, "nodes": [7, 8], "tags": {"amenity": "parking"}},
        ])
        assert features[0]["geometry"] is None

    def test_way_with_inline_geometry(self):
        features = overpass_to_geojson([
            {
                "type": "way",
                "id": 6,
                "tags": {"amenity": "parking"},
                "geometry": [
                    {"lat": 37.0, "lon": -122.0},
                    {"lat": 37.1, "lon": -122.0},
                    {"lat": 37.1, "lon": -122.1},
                    {"lat": 37.0, "lon": -122.0},
                ],
            },
        ])
        assert features[0]["geometry"]["type"] == "Polygon"
        assert features[0]["geometry"]["coordinates"][0][1] == [-122.0, 37.1]


def relation_member_payload():
    """A tagged parking node that is also a member of a site relation."""
    return {
        "elements": [
            {
                "type": "node",
                "id": 1,
                "lat": 37.76,
                "lon": -122.41,
                "tags": {"amenity": "parking", "name": "Lot A"},
            },
            {
                "type": "relation",
                "id": 9,
                "members": [
                    {"type": "node", "ref": 1, "role": "parking"},
                    {"type": "node", "ref": 2, "role": "entrance"},
                ],
                "tags": {"type": "site", "amenity": "parking"},
            },
            {"type": "node", "id": 1, "lat": 37.76, "lon": -122.41},
            {"type": "node", "id": 2, "lat": 37.7605, "lon": -122.4105},
        ]
    }


class TestRelationMembers:
    """Untagged relation members and repeated ids."""

    def test_untagged_member_nodes_are_not_emitted(self):
        ids = {f["id"] for f in overpass_to_geojson(relation_member_payload()["elements"])}
        assert ids == {"node/1", "relation/9"}

    def test_repeated_node_keeps_its_tags(self):
        records = normalize_geospatial(relation_member_payload())

        assert [(r.id, r.name, r.amenity) for r in records] == [(1, "Lot A", "parking")]

    def test_untagged_copy_first_does_not_hide_tagged_node(self):
        payload = relation_member_payload()
        payload["elements"].reverse()

        records = normalize_geospatial(payload)

        assert [(r.id, r.name) for r in records] == [(1, "Lot A")]


class TestNormalizeGeospatial:
    """Tests for normalize_geospatial."""

    def test_only_points_are_kept(self):
        payload = overpass_payload()
        records = normalize_geospatial(payload)

        assert [r.id for r in records] == [101, 102]
        assert len(records) <= len(payload["elements"])

    def test_named_fields_and_residual_tags(self):
        record = normalize_geospatial(overpass_payload())[0]

        assert record.name == "Mission Garage"
        assert record.amenity == "parking"
        assert record.other_tags == {"fee": "yes", "capacity": "120"}
        assert record.latitude == pytest.approx(37.7601)
        assert record.longitude == pytest.approx(-122.4148)

    def test_missing_name_is_none(self):
        record = normalize_geospatial(overpass_payload())[1]
        assert record.name is None
        assert record.other_tags == {}

    def test_stamps_source_timestamp_and_confidence(self):
        records = normalize_geospatial(
            overpass_payload(),
            source="overpass-test",
            confidence=0.75,
            retrieved_at="2026-01-01T00:00:00+00:00",
        )
        for record in records:
            assert record.source == "overpass-test"
            assert record.confidence == 0.75
            assert record.retrieved_at == "2026-01-01T00:00:00+00:00"

    def test_timestamp_captured_once_per_call(self):
        records = normalize_geospatial(overpass_payload())
        assert len({r.retrieved_at for r in records}) == 1
        assert "T" in records[0].retrieved_at

    def test_node_with_bad_coordinates_is_skipped(self):
        payload = {
            "elements": [
                {"type": "node", "id": 1, "lat": "north", "lon": 2.0, "tags": {"amenity": "parking"}},
                {"type": "node", "id": 2, "lat": 1.0, "lon": 2.0, "tags": {"amenity": "parking"}},
            ]
        }
        records = normalize_geospatial(payload)
        assert [r.id for r in records] == [2]

    def test_malformed_payload_yields_nothing(self):
        assert normalize_geospatial({"error": "rate limited"}) == []
        assert normalize_geospatial(None) == []

    def test_empty_elements(self):
        assert normalize_geospatial({"elements": []}) == []


class TestExtractHourlyRate:
    """Tests for extract_hourly_rate."""

    def test_decimal_rate(self):
        assert extract_hourly_rate("Covered parking, $12.50/hr, valet") == Decimal("12.50")

    def test_whole_dollar_rate(self):
        assert extract_hourly_rate("Only $8/hr on weekends") == Decimal("8")

    def test_first_match_wins(self):
        assert extract_hourly_rate("$5/hr early bird, $9.75/hr after 10am") == Decimal("5")

    def test_no_rate(self):
        assert extract_hourly_rate("Rates vary, call ahead") is None

    def test_rate_without_per_hour_suffix(self):
        assert extract_hourly_rate("Flat $20 per day") is None

    def test_empty(self):
        assert extract_hourly_rate(None) is None
        assert extract_hourly_rate("") is None


class TestExtractHours:
    """Tests for extract_hours."""

    def test_simple_range(self):
        assert extract_hours("Open 8am-6pm") == "8am-6pm"

    def test_stops_at_punctuation(self):
        assert extract_hours("Garage. Open 6:00-22:00. $4/hr") == "6:00-22:00"

    def test_open_24_hours(self):
        assert extract_hours("Open 24 hours") == "24 hours"

    def test_no_open_keyword(self):
        assert extract_hours("Hours 8am-6pm daily") is None

    def test_lowercase_open_is_not_matched(self):
        assert extract_hours("open 8am-6pm") is None

    def test_empty(self):
        assert extract_hours(None) is None


class TestNormalizeSearchResults:
    """Tests for normalize_search_results."""

    def search_payload(self):
        return {
            "local_results": [
                {
                    "title": "Mission Bartlett Garage",
                    "address": "3255 21st St, San Francisco, CA 94110",
                    "link": "https://example.com/bartlett",
                    "snippet": "Covered garage. <b>$3.50/hr</b>. Open 7am-midnight",
                },
                {
                    "title": "Street parking lot",
                    "place_id": "ChIJ123",
                    "description": "Tips for parking in the Mission",
                },
                {
                    "title": "No url result",
                    "snippet": "$1/hr",
                },
            ]
        }

    def test_extracts_fields(self):
        candidates = normalize_search_results(self.search_payload(), "Mission")
        first = candidates[0]

        assert first.name == "Mission Bartlett Garage"
        assert first.address == "3255 21st St, San Francisco, CA 94110"
        assert first.source_url == "https://example.com/bartlett"
        assert first.hourly_rate == Decimal("3.50")
        assert first.hours == "7am-midnight"

    def test_place_id_becomes_maps_url(self):
        second = normalize_search_results(self.search_payload(), "Mission")[1]
        assert second.source_url == "https://www.google.com/maps/place/?q=place_id:ChIJ123"
        assert second.address is None

    def test_missing_rate_and_hours_are_none(self):
        second = normalize_search_results(self.search_payload(), "Mission")[1]
        assert second.hourly_rate is None
        assert second.hours is None

    def test_neighborhood_comes_from_caller(self):
        candidates = normalize_search_results(self.search_payload(), "The Mission")
        assert {c.neighborhood for c in candidates} == {"The Mission"}

    def test_results_without_url_are_skipped(self):
        candidates = normalize_search_results(self.search_payload(), "Mission")
        assert len(candidates) == 2

    def test_single_place_result(self):
        payload = {
            "place_results": {
                "title": "Fifth & Mission Garage",
                "address": "833 Mission St",
                "link": "https://example.com/fifth",
            }
        }
        candidates = normalize_search_results(payload, "SoMa")
        assert [c.name for c in candidates] == ["Fifth & Mission Garage"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"local_results": []},
            {"error": "Google hasn't returned any results for this query."},
        ],
    )
    def test_no_results(self, payload):
        assert normalize_search_results(payload, "Mission") == []
