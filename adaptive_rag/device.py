# adaptive_rag/device.py

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel

from adaptive_rag.models import DeviceConstraints, ProcessingPower


_MOBILE_RE = re.compile(r"android|webos|iphone|ipod|blackberry|iemobile|opera mini", re.IGNORECASE)
_TABLET_RE = re.compile(r"ipad|android(?!.*mobile)|tablet", re.IGNORECASE)
_HIGH_END_MOBILE_RE = re.compile(r"iphone|ipad|samsung galaxy|pixel|oneplus", re.IGNORECASE)


class DeviceProfile(BaseModel):
    """Device facts inferred from a User-Agent string."""

    is_mobile: bool
    is_tablet: bool
    is_desktop: bool
    has_internet: bool = True
    processing_power: ProcessingPower
    memory_available: float
    connection_type: str = "unknown"
    user_agent: str = ""
    screen_width: int
    screen_height: int

    def to_constraints(self) -> DeviceConstraints:
        return DeviceConstraints(
            is_mobile=self.is_mobile,
            has_internet=self.has_internet,
            processing_power=self.processing_power,
            memory_available=self.memory_available,
        )


def detect_device(user_agent: Optional[str], additional_info: Optional[Dict[str, Any]] = None) -> DeviceProfile:
    """
    Rough capability estimate from the User-Agent.

    Values in additional_info (connection_type, screen_width, screen_height,
    has_internet, memory_available) override the estimates.
    """

    ua = (user_agent or "").lower()
    info = additional_info or {}

    is_mobile = bool(_MOBILE_RE.search(ua))
    is_tablet = bool(_TABLET_RE.search(ua))
    is_desktop = not is_mobile and not is_tablet

    if is_mobile:
        if _HIGH_END_MOBILE_RE.search(ua):
            power = ProcessingPower.HIGH
        elif "android" in ua:
            power = ProcessingPower.MEDIUM
        else:
            power = ProcessingPower.LOW
    else:
        power = ProcessingPower.HIGH

    if is_mobile:
        memory = 4096.0 if power == ProcessingPower.HIGH else 2048.0
    elif is_tablet:
        memory = 4096.0
    else:
        memory = 8192.0

    connection = info.get("connection_type") or ("cellular" if is_mobile else "wifi")

    if is_mobile:
        width, height = 375, 667
    elif is_tablet:
        width, height = 768, 1024
    else:
        width, height = 1920, 1080

    return DeviceProfile(
        is_mobile=is_mobile,
        is_tablet=is_tablet,
        is_desktop=is_desktop,
        has_internet=info.get("has_internet", True),
        processing_power=power,
        memory_available=info.get("memory_available") or memory,
        connection_type=connection,
        user_agent=user_agent or "",
        screen_width=info.get("screen_width") or width,
        screen_height=info.get("screen_height") or height,
    )


def should_use_local_processing(device: DeviceProfile) -> bool:
    return (
        not device.has_internet
        or (device.is_mobile and device.processing_power == ProcessingPower.LOW)
        or device.connection_type == "cellular"
    )
