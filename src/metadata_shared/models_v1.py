import re
from typing import Any, Tuple

from pydantic import AwareDatetime, BaseModel, ConfigDict, field_validator

# RFC3339 date-time mit Pflicht-Offset, z.B. "2026-10-19T12:00:00Z"
_RFC3339 = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$")


class InstanceActionV1(BaseModel):
    """Payload des Endpoints `spot/instance-action` in der Version V1"""
    model_config = ConfigDict(frozen=True)

    action: str
    time: AwareDatetime

    @field_validator("time", mode="before")
    @classmethod
    def _rfc3339_only(cls, v: Any) -> Any:
        # pydantic würde sonst auch Unix-Timestamps (Zahl oder Ziffern-String) akzeptieren
        if not isinstance(v, str) or not _RFC3339.match(v):
            raise ValueError("time must be an RFC3339 timestamp")
        return v


class InstanceAttributesV1(BaseModel):
    """Instanz-Attribute, die als Labels an beide Metriken gehängt werden.

    Jedes Feld kann leer sein, wenn der Metadata-Service den Wert nicht liefert.
    """
    model_config = ConfigDict(frozen=True)

    availability_zone: str = ""
    hostname: str = ""
    instance_id: str = ""
    instance_type: str = ""

    def label_values(self) -> Tuple[str, ...]:
        """Label-Werte in der Reihenfolge von `INSTANCE_LABELS`."""
        return self.availability_zone, self.hostname, self.instance_id, self.instance_type
