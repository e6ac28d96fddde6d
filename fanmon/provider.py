"""Reads raw field values from the fan driver's sysfs attributes.

Each field is a single small text file under the driver directory, e.g.
``/sys/devices/platform/ec_fan/fan1_rpm``. Integer contents become ``int``;
anything else (mode names) stays ``str``.
"""

from __future__ import annotations

from pathlib import Path

import psutil

from fanmon.fields import REGISTRY, FieldId, RawValue

SOURCE_FILES: dict[FieldId, str] = {
    FieldId.FAN1_RPM: "fan1_rpm",
    FieldId.FAN2_RPM: "fan2_rpm",
    FieldId.FAN1_MODE: "fan1_mode",
    FieldId.FAN1_LEVEL: "fan1_level",
    FieldId.FAN1_RAMP_UP: "fan1_ramp_up",
    FieldId.FAN1_RAMP_DOWN: "fan1_ramp_down",
    FieldId.FAN2_MODE: "fan2_mode",
    FieldId.FAN2_LEVEL: "fan2_level",
    FieldId.FAN2_RAMP_UP: "fan2_ramp_up",
    FieldId.FAN2_RAMP_DOWN: "fan2_ramp_down",
    FieldId.TEMP_CURRENT: "temp_current",
    FieldId.TEMP_MIN: "temp_min",
    FieldId.TEMP_MAX: "temp_max",
    FieldId.POWER_MODE: "power_mode",
}

MODULE_ROOT = Path("/sys/module")


class AcquisitionError(RuntimeError):
    """A snapshot could not be read in full."""


class ProviderUnavailable(AcquisitionError):
    """The driver is not loaded or its sysfs directory is missing."""


def parse_value(text: str) -> RawValue:
    value = text.strip()
    try:
        return int(value)
    except ValueError:
        return value


class SysfsStateProvider:
    """Reads one full snapshot per call; any unreadable source fails the call."""

    def __init__(
        self,
        root: Path,
        module: str = "",
        temp_sensor: str = "",
        module_root: Path = MODULE_ROOT,
        fields: tuple[FieldId, ...] = REGISTRY.field_ids(),
    ) -> None:
        self.root = root
        self.module = module
        self.temp_sensor = temp_sensor
        self.module_root = module_root
        self.fields = fields

    def check_available(self) -> None:
        """Raise :class:`ProviderUnavailable` unless the driver is present."""
        if self.module and not (self.module_root / self.module).is_dir():
            raise ProviderUnavailable(
                f"kernel module '{self.module}' is not loaded (try: sudo modprobe {self.module})"
            )
        if not self.root.is_dir():
            raise ProviderUnavailable(f"driver directory not found: {self.root}")

    def read(self) -> dict[FieldId, RawValue]:
        snapshot: dict[FieldId, RawValue] = {}
        for fid in self.fields:
            if fid is FieldId.TEMP_CURRENT and self.temp_sensor:
                snapshot[fid] = self._read_sensor()
            else:
                snapshot[fid] = self._read_file(fid)
        return snapshot

    def _read_file(self, fid: FieldId) -> RawValue:
        path = self.root / SOURCE_FILES[fid]
        try:
            return parse_value(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise AcquisitionError(f"cannot read {path}: {e.strerror or e}") from e
        except UnicodeDecodeError as e:
            raise AcquisitionError(f"cannot decode {path}: {e.reason}") from e

    def _read_sensor(self) -> int:
        """Current temperature from a psutil sensor chip, in whole degrees."""
        try:
            temps = psutil.sensors_temperatures()
        except AttributeError as e:
            raise AcquisitionError("temperature sensors are not supported on this platform") from e
        entries = temps.get(self.temp_sensor) if temps else None
        if not entries:
            raise AcquisitionError(f"temperature sensor '{self.temp_sensor}' not found")
        return round(entries[0].current)
