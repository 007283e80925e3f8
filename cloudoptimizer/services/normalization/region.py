"""
Region Normalization

Maps provider-native region names onto a provider-agnostic canonical form so
costs can be compared across clouds, e.g. Azure "eastus", AWS "us-east-1" and
GCP "us-east1" all become "us-east-1".

The mapping is total: unmapped regions fall back to the lowercased name with
separators stripped. Canonical regions map to themselves.
"""

from enum import Enum
from typing import Dict, Optional, Union

from cloudoptimizer.models.cloud import CloudProvider

UNKNOWN_REGION = "unknown"

AZURE_TO_CANONICAL = {
    "eastus": "us-east-1",
    "eastus2": "us-east-2",
    "westus": "us-west-1",
    "westus2": "us-west-2",
    "westus3": "us-west-3",
    "centralus": "us-central-1",
    "northcentralus": "us-north-1",
    "southcentralus": "us-south-1",
    "westeurope": "eu-west-1",
    "northeurope": "eu-north-1",
    "uksouth": "uk-south-1",
    "ukwest": "uk-west-1",
    "francecentral": "eu-central-1",
    "germanywestcentral": "eu-central-2",
    "southeastasia": "asia-southeast-1",
    "eastasia": "asia-east-1",
    "japaneast": "asia-northeast-1",
    "japanwest": "asia-northeast-2",
    "australiaeast": "australia-east-1",
    "australiasoutheast": "australia-southeast-1",
    "brazilsouth": "sa-east-1",
    "canadacentral": "ca-central-1",
    "canadaeast": "ca-east-1",
    "koreacentral": "asia-northeast-3",
    "indiacentral": "asia-south-1",
}

AWS_TO_CANONICAL = {
    "us-east-1": "us-east-1",
    "us-east-2": "us-east-2",
    "us-west-1": "us-west-1",
    "us-west-2": "us-west-2",
    "eu-west-1": "eu-west-1",
    "eu-west-2": "eu-west-2",
    "eu-west-3": "eu-west-3",
    "eu-central-1": "eu-central-1",
    "eu-north-1": "eu-north-1",
    "ap-east-1": "asia-east-1",
    "ap-southeast-1": "asia-southeast-1",
    "ap-southeast-2": "australia-east-1",
    "ap-northeast-1": "asia-northeast-1",
    "ap-northeast-2": "asia-northeast-3",
    "ap-south-1": "asia-south-1",
    "sa-east-1": "sa-east-1",
    "ca-central-1": "ca-central-1",
}

GCP_TO_CANONICAL = {
    "us-east1": "us-east-1",
    "us-east4": "us-east-2",
    "us-west1": "us-west-1",
    "us-west2": "us-west-2",
    "us-west3": "us-west-3",
    "us-west4": "us-west-4",
    "us-central1": "us-central-1",
    "europe-west1": "eu-west-1",
    "europe-west2": "eu-west-2",
    "europe-west3": "eu-central-1",
    "europe-west4": "eu-west-3",
    "europe-north1": "eu-north-1",
    "asia-east1": "asia-east-1",
    "asia-east2": "asia-east-2",
    "asia-southeast1": "asia-southeast-1",
    "asia-southeast2": "asia-southeast-2",
    "asia-northeast1": "asia-northeast-1",
    "asia-northeast2": "asia-northeast-2",
    "asia-northeast3": "asia-northeast-3",
    "asia-south1": "asia-south-1",
    "australia-southeast1": "australia-east-1",
    "southamerica-east1": "sa-east-1",
    "northamerica-northeast1": "ca-central-1",
}


def _strip(region: str) -> str:
    return region.strip().lower().replace(" ", "").replace("-", "").replace("_", "")


# Lookup tables keyed on the separator-free form so "East US", "east-us" and "eastus" all match
_LOOKUP: Dict[CloudProvider, Dict[str, str]] = {
    CloudProvider.AZURE: {_strip(k): v for k, v in AZURE_TO_CANONICAL.items()},
    CloudProvider.AWS: {_strip(k): v for k, v in AWS_TO_CANONICAL.items()},
    CloudProvider.GCP: {_strip(k): v for k, v in GCP_TO_CANONICAL.items()},
}

CANONICAL_REGIONS = frozenset(
    set(AZURE_TO_CANONICAL.values()) | set(AWS_TO_CANONICAL.values()) | set(GCP_TO_CANONICAL.values())
)


class GeographicZone(str, Enum):
    NORTH_AMERICA = "NORTH_AMERICA"
    SOUTH_AMERICA = "SOUTH_AMERICA"
    EUROPE = "EUROPE"
    ASIA_PACIFIC = "ASIA_PACIFIC"
    AUSTRALIA = "AUSTRALIA"
    UNKNOWN = "UNKNOWN"


class RegionNormalizer:
    """Stateless region mapping. Safe to share."""

    def to_canonical(self, provider: Union[CloudProvider, str], region: Optional[str]) -> str:
        if region is None or not region.strip():
            return UNKNOWN_REGION

        lowered = region.strip().lower()
        if lowered in CANONICAL_REGIONS or lowered == UNKNOWN_REGION:
            return lowered

        key = _strip(lowered)
        try:
            table = _LOOKUP[CloudProvider.from_string(provider)]
        except ValueError:
            return key
        return table.get(key, key)

    def geographic_zone(self, canonical_region: Optional[str]) -> GeographicZone:
        if not canonical_region:
            return GeographicZone.UNKNOWN
        if canonical_region.startswith(("us-", "ca-")):
            return GeographicZone.NORTH_AMERICA
        if canonical_region.startswith(("eu-", "uk-")):
            return GeographicZone.EUROPE
        if canonical_region.startswith("asia-"):
            return GeographicZone.ASIA_PACIFIC
        if canonical_region.startswith("australia-"):
            return GeographicZone.AUSTRALIA
        if canonical_region.startswith("sa-"):
            return GeographicZone.SOUTH_AMERICA
        return GeographicZone.UNKNOWN

    def same_zone(self, region_a: str, region_b: str) -> bool:
        zone = self.geographic_zone(region_a)
        return zone != GeographicZone.UNKNOWN and zone == self.geographic_zone(region_b)
