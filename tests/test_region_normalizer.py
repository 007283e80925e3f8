"""
Tests for provider region -> canonical region mapping.
"""

import pytest

from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.services.normalization.region import GeographicZone, RegionNormalizer


@pytest.fixture
def normalizer():
    return RegionNormalizer()


class TestToCanonical:
    """Mapping provider-native region names."""

    @pytest.mark.parametrize("provider,region,expected", [
        (CloudProvider.AZURE, "eastus", "us-east-1"),
        (CloudProvider.AZURE, "East US", "us-east-1"),
        (CloudProvider.AZURE, "west-europe", "eu-west-1"),
        (CloudProvider.AWS, "ap-southeast-2", "australia-east-1"),
        (CloudProvider.GCP, "us-central1", "us-central-1"),
        (CloudProvider.GCP, "europe-west3", "eu-central-1"),
    ])
    def test_known_regions(self, normalizer, provider, region, expected):
        assert normalizer.to_canonical(provider, region) == expected

    def test_provider_accepts_string(self, normalizer):
        assert normalizer.to_canonical("azure", "eastus2") == "us-east-2"

    @pytest.mark.parametrize("region", [None, "", "   "])
    def test_missing_region_is_unknown(self, normalizer, region):
        assert normalizer.to_canonical(CloudProvider.AWS, region) == "unknown"

    def test_canonical_region_passes_through(self, normalizer):
        assert normalizer.to_canonical(CloudProvider.AZURE, "us-east-1") == "us-east-1"

    def test_unmapped_region_is_stripped_key(self, normalizer):
        """Unknown regions are never an error; they fall back to the separator-free name."""
        assert normalizer.to_canonical(CloudProvider.AZURE, "Norway East") == "norwayeast"
        assert normalizer.to_canonical("oracle", "us-ashburn-1") == "usashburn1"

    @pytest.mark.parametrize("provider,region", [
        (CloudProvider.AZURE, "East US"),
        (CloudProvider.AZURE, "Norway East"),
        (CloudProvider.AWS, "eu-north-1"),
        (CloudProvider.GCP, "asia-east1"),
        (CloudProvider.GCP, None),
    ])
    def test_idempotent(self, normalizer, provider, region):
        once = normalizer.to_canonical(provider, region)
        assert normalizer.to_canonical(provider, once) == once


class TestGeographicZones:
    """Zone lookup on canonical regions."""

    @pytest.mark.parametrize("region,zone", [
        ("us-east-1", GeographicZone.NORTH_AMERICA),
        ("ca-central-1", GeographicZone.NORTH_AMERICA),
        ("eu-west-1", GeographicZone.EUROPE),
        ("uk-south-1", GeographicZone.EUROPE),
        ("asia-east-1", GeographicZone.ASIA_PACIFIC),
        ("australia-east-1", GeographicZone.AUSTRALIA),
        ("sa-east-1", GeographicZone.SOUTH_AMERICA),
        ("norwayeast", GeographicZone.UNKNOWN),
        (None, GeographicZone.UNKNOWN),
    ])
    def test_zone(self, normalizer, region, zone):
        assert normalizer.geographic_zone(region) == zone

    def test_same_zone(self, normalizer):
        assert normalizer.same_zone("us-east-1", "us-west-2") is True
        assert normalizer.same_zone("us-east-1", "eu-west-1") is False
        assert normalizer.same_zone("unknown", "unknown") is False
