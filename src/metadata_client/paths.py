from enum import Enum


class MetadataPath(str, Enum):
    """Pfade relativ zum Metadata-Endpoint (ohne führenden Slash)."""
    AVAILABILITY_ZONE = "placement/availability-zone"
    HOSTNAME = "hostname"
    INSTANCE_ID = "instance-id"
    INSTANCE_TYPE = "instance-type"
    INSTANCE_ACTION = "spot/instance-action"
