"""
Time-series store backed by InfluxDB 2.x.

Every record becomes one point. Addresses, protocol and (for flows)
application are tags; counters are typed fields. Geolocation, when both
coordinates are known for an address, adds country/city/ISP tags and
latitude/longitude fields for that address's role (source or dest).

Points are buffered locally and written with a synchronous write API on
``flush``, so failures can be counted instead of being lost in a
background batching thread.
"""

import logging
from typing import Any, Optional

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from ..config.constants import (
    FLOW_MEASUREMENT,
    STORAGE_MODE_TIMESERIES,
    THREAT_MEASUREMENT,
)
from ..geoip.models import GeoResult, RecordGeo
from ..ingestion.records import CanonicalRecord, FlowRecord, ThreatRecord
from .base import RecordStore, StorageConfigurationError

logger = logging.getLogger(__name__)

# Points held locally before an intermediate write
DEFAULT_MAX_BUFFER = 5000

# Tag value for missing addresses, protocol, application and country
UNKNOWN_TAG = "unknown"


# =============================================================================
# Point Builders
# =============================================================================


def _tag_if_present(point: Point, key: str, value: Optional[str]) -> Point:
    if value:
        point.tag(key, value)
    return point


def _add_geo(point: Point, prefix: str, geo: Optional[GeoResult]) -> None:
    """Attach one address role's geolocation; skipped unless both coordinates exist."""
    if geo is None or not geo.has_coordinates:
        return
    point.tag(f"{prefix}Country", geo.country or UNKNOWN_TAG)
    point.field(f"{prefix}Latitude", float(geo.latitude))
    point.field(f"{prefix}Longitude", float(geo.longitude))
    _tag_if_present(point, f"{prefix}City", geo.city)
    _tag_if_present(point, f"{prefix}ISP", geo.isp)


def _add_record_geo(point: Point, geo: Optional[RecordGeo]) -> None:
    if geo is None:
        return
    _add_geo(point, "source", geo.source)
    _add_geo(point, "dest", geo.destination)


def build_flow_point(record: FlowRecord, geo: Optional[RecordGeo] = None) -> Point:
    """Build the ``network_flow`` point for a flow record."""
    point = Point(FLOW_MEASUREMENT)
    point.tag("sourceAddress", record.source_address or UNKNOWN_TAG)
    point.tag("destinationAddress", record.destination_address or UNKNOWN_TAG)
    point.tag("protocol", record.protocol or UNKNOWN_TAG)
    point.tag("application", record.application or UNKNOWN_TAG)

    _add_record_geo(point, geo)

    point.field("bytes", int(record.bytes))
    point.field("packets", int(record.packets))
    point.field("sourcePort", int(record.source_port))
    point.field("destinationPort", int(record.destination_port))
    point.field("duration", float(record.duration))

    for key, value in (
        ("direction", record.direction),
        ("clientName", record.client_name),
        ("category", record.category),
        ("action", record.action),
    ):
        if value:
            point.field(key, value)

    return point.time(record.timestamp, WritePrecision.MS)


def build_threat_point(record: ThreatRecord, geo: Optional[RecordGeo] = None) -> Point:
    """Build the ``network_threat`` point for a threat record."""
    point = Point(THREAT_MEASUREMENT)
    point.tag("sourceAddress", record.source_address or UNKNOWN_TAG)
    point.tag("destinationAddress", record.destination_address or UNKNOWN_TAG)
    point.tag("protocol", record.protocol or UNKNOWN_TAG)
    point.tag("threatType", record.threat_type)
    point.tag("threatCategory", record.threat_category)
    point.tag("severity", record.severity)

    _add_record_geo(point, geo)

    point.field("sourcePort", int(record.source_port))
    point.field("destinationPort", int(record.destination_port))
    point.field("action", record.action)

    return point.time(record.timestamp, WritePrecision.MS)


def build_point(record: CanonicalRecord, geo: Optional[RecordGeo] = None) -> Point:
    if isinstance(record, FlowRecord):
        return build_flow_point(record, geo)
    return build_threat_point(record, geo)


# =============================================================================
# Time-Series Store Implementation
# =============================================================================


class TimeSeriesStore(RecordStore):
    """
    InfluxDB point writer with local buffering.

    Usage:
        store = TimeSeriesStore(url, token=token, org="unifi-flows", bucket="network-data")
        store.initialize()
        store.write(record, geo)
        failed = store.flush()
        store.close()
    """

    def __init__(
        self,
        url: str = "http://localhost:8086",
        token: str = "",
        org: str = "unifi-flows",
        bucket: str = "network-data",
        *,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        client: Optional[InfluxDBClient] = None,
        write_api: Optional[Any] = None,
    ):
        """
        Args:
            url: InfluxDB base URL
            token: API token (required unless a client is injected)
            org: Organization name
            bucket: Destination bucket
            max_buffer: Points held before an intermediate write
            client: Pre-built InfluxDBClient (optional)
            write_api: Pre-built write API exposing ``write(bucket, org, record)``

        Raises:
            StorageConfigurationError: If no token is available
        """
        if client is None and write_api is None and not token:
            raise StorageConfigurationError(
                "INFLUXDB_TOKEN is required when the time-series store is enabled"
            )
        if not bucket:
            raise StorageConfigurationError("An InfluxDB bucket name is required")

        self.url = url
        self.org = org
        self.bucket = bucket
        self.max_buffer = max_buffer

        self._owns_client = client is None and write_api is None
        self._client = client
        if self._owns_client:
            self._client = InfluxDBClient(url=url, token=token, org=org)
        self._write_api = write_api
        self._buffer: list[Point] = []
        self._unreported_failures = 0

        logger.info(f"Time-series store configured for {url} (bucket={bucket})")

    @property
    def backend_type(self) -> str:
        """Return backend type identifier."""
        return STORAGE_MODE_TIMESERIES

    def initialize(self) -> None:
        """Create the synchronous write API if one was not injected."""
        if self._write_api is None and self._client is not None:
            self._write_api = self._client.write_api(write_options=SYNCHRONOUS)

    def write(self, record: CanonicalRecord, geo: Optional[RecordGeo] = None) -> bool:
        """Convert a record to a point and buffer it."""
        try:
            point = build_point(record, geo)
        except (TypeError, ValueError) as e:
            logger.warning(f"Rejected record {getattr(record, 'id', '?')}: {e}")
            return False

        self._buffer.append(point)
        if len(self._buffer) >= self.max_buffer:
            self._unreported_failures += self._write_buffer()
        return True

    def flush(self) -> int:
        """Write all buffered points; return failures since the last flush."""
        failures = self._unreported_failures + self._write_buffer()
        self._unreported_failures = 0
        return failures

    def _write_buffer(self) -> int:
        """Send buffered points in one request. Returns the number lost."""
        if not self._buffer:
            return 0
        self.initialize()
        points, self._buffer = self._buffer, []
        try:
            self._write_api.write(bucket=self.bucket, org=self.org, record=points)
        # The client surfaces ApiException as well as raw urllib3 transport errors
        except Exception as e:
            logger.error(f"Failed to write {len(points)} points to InfluxDB: {e}")
            return len(points)
        logger.debug(f"Wrote {len(points)} points to InfluxDB")
        return 0

    def close(self) -> None:
        """Close the write API and client."""
        if self._buffer:
            logger.warning(f"Closing time-series store with {len(self._buffer)} unflushed points")
        if self._owns_client:
            if self._write_api is not None:
                self._write_api.close()
                self._write_api = None
            self._client.close()

    def health_check(self) -> dict:
        """Ping the InfluxDB server."""
        check = super().health_check()
        if self._client is None:
            check["details"] = {"url": self.url, "note": "client injected"}
            return check
        try:
            healthy = bool(self._client.ping())
        except Exception as e:
            healthy = False
            check["details"] = {"error": str(e)}
        if not healthy:
            check.update(healthy=False, message="InfluxDB ping failed")
        check["details"]["url"] = self.url
        return check
