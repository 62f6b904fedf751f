"""Tests for ZIP code geocoding and site distances."""

from unittest.mock import patch

from geopy.exc import GeocoderTimedOut
from geopy.location import Location
import pytest

from trial_matching.geo import ZipGeocoder, site_point, within_radius

BATTERY_PARK = (40.7033, -74.0170)
JERSEY_CITY = (40.7178, -74.0431)
SAN_FRANCISCO = (37.7485, -122.4156)


@pytest.fixture
def nominatim():
    with patch("trial_matching.geo.Nominatim") as mock_nominatim:
        yield mock_nominatim.return_value


@pytest.fixture
def geocoder(nominatim):
    return ZipGeocoder(min_delay_seconds=0, max_retries=0)


class TestZipGeocoder:
    """Tests for ZipGeocoder class."""

    def test_locate_is_cached(self, nominatim, geocoder):
        """Test that each postal code is looked up once."""
        nominatim.geocode.return_value = Location("New York, 10004", BATTERY_PARK, {})

        assert geocoder.locate("10004") == BATTERY_PARK
        assert geocoder.locate(" 10004 ") == BATTERY_PARK

        nominatim.geocode.assert_called_once_with({"postalcode": "10004", "country": "US"}, exactly_one=True)

    def test_unknown_code(self, nominatim, geocoder):
        nominatim.geocode.return_value = None

        assert geocoder.locate("00000") is None
        assert geocoder.locate("00000") is None
        assert nominatim.geocode.call_count == 1

    def test_failure_is_not_cached(self, nominatim, geocoder):
        """Test that a timed out lookup returns None and is retried on the next call."""
        nominatim.geocode.side_effect = [
            GeocoderTimedOut("timed out"),
            Location("New York, 10004", BATTERY_PARK, {}),
        ]

        assert geocoder.locate("10004") is None
        assert geocoder.locate("10004") == BATTERY_PARK

    def test_empty_code(self, nominatim, geocoder):
        assert geocoder.locate(None) is None
        assert geocoder.locate("  ") is None
        nominatim.geocode.assert_not_called()

    def test_user_agent(self):
        with patch("trial_matching.geo.Nominatim") as mock_nominatim:
            ZipGeocoder(user_agent="oncology-tests", timeout=3)
        mock_nominatim.assert_called_once_with(user_agent="oncology-tests", timeout=3)


class TestSitePoint:
    """Tests for site_point function."""

    def test_registry_coordinates(self, nominatim, geocoder):
        location = {"zip": "07302", "geoPoint": {"lat": 40.7178, "lon": -74.0431}}

        assert site_point(location, geocoder) == JERSEY_CITY
        nominatim.geocode.assert_not_called()

    def test_postal_code_with_site_country(self, nominatim, geocoder):
        nominatim.geocode.return_value = Location("Jersey City, 07302", JERSEY_CITY, {})

        assert site_point({"zip": "07302", "country": "United States"}, geocoder) == JERSEY_CITY
        nominatim.geocode.assert_called_once_with(
            {"postalcode": "07302", "country": "United States"}, exactly_one=True)

    def test_nothing_to_locate(self):
        assert site_point({"city": "Boston"}) is None
        assert site_point({"zip": "02115"}, geocoder=None) is None


class TestWithinRadius:
    """Tests for within_radius function."""

    def test_across_state_line(self):
        """Test that a site a few miles away in another state is in range."""
        assert within_radius(BATTERY_PARK, JERSEY_CITY, 50)
        assert within_radius(BATTERY_PARK, JERSEY_CITY, 5)

    def test_other_coast(self):
        assert not within_radius(BATTERY_PARK, SAN_FRANCISCO, 50)
