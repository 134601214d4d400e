"""Device-to-boat resolution from a static mapping."""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Union


class DeviceDirectory:
    def __init__(self, mapping: Optional[Mapping[str, int]] = None, allow_boat_numbers: bool = True):
        self._by_device: Dict[str, int] = {str(k): int(v) for k, v in (mapping or {}).items()}
        self.allow_boat_numbers = allow_boat_numbers

    @classmethod
    def from_settings(cls) -> "DeviceDirectory":
        from pridesync.config import settings

        return cls(settings.device_map)

    def resolve(
        self, boat_number: Optional[int] = None, imei: Optional[Union[str, int]] = None
    ) -> Optional[int]:
        """Boat id for a webhook sender, or ``None`` if nobody claims it.

        A boat number is taken as-is (boats report their own number) unless it
        is mapped explicitly; an IMEI must be mapped.
        """
        if boat_number is not None:
            mapped = self._by_device.get(str(boat_number))
            if mapped is not None:
                return mapped
            return int(boat_number) if self.allow_boat_numbers else None
        if imei is not None:
            return self._by_device.get(str(imei))
        return None
