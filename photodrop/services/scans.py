# photodrop/services/scans.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from photodrop.models import Bucket, ScanEvent
from photodrop.models.common import utcnow
from photodrop.observability.metrics import scan_counter

logger = structlog.get_logger(__name__)


@dataclass
class DeviceInfo:
    device_type: str = "unknown"  # mobile|tablet|desktop|unknown
    browser_name: str = "unknown"
    browser_version: str = ""
    os_name: str = "unknown"
    os_version: str = ""


@dataclass
class ScanSignal:
    user_agent: str = ""
    referrer: str = ""
    source: str = "qr_code"
    ip_address: Optional[str] = None


# (needle, browser name, version pattern); Edge and Chrome UAs also carry "safari"
_BROWSERS = (
    ("edg", "Edge", r"edge?/([0-9]+)"),
    ("firefox", "Firefox", r"firefox/([0-9]+)"),
    ("chrome", "Chrome", r"chrome/([0-9]+)"),
    ("safari", "Safari", r"version/([0-9]+)"),
)

_WINDOWS_VERSIONS = (("windows nt 10", "10"), ("windows nt 6.3", "8.1"), ("windows nt 6.1", "7"))


def _match(pattern: str, ua: str) -> str:
    m = re.search(pattern, ua)
    return m.group(1) if m else ""


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    ua = (user_agent or "").lower()
    info = DeviceInfo()
    if not ua:
        return info

    if re.search(r"tablet|ipad", ua):
        info.device_type = "tablet"
    elif re.search(r"mobile|android|iphone", ua):
        info.device_type = "mobile"
    elif re.search(r"desktop|windows|mac|linux", ua):
        info.device_type = "desktop"

    for needle, name, pattern in _BROWSERS:
        if needle in ua:
            info.browser_name = name
            info.browser_version = _match(pattern, ua)
            break

    if "iphone" in ua or "ipad" in ua:
        info.os_name = "iOS"
        info.os_version = _match(r"os ([0-9_]+)", ua).replace("_", ".")
    elif "android" in ua:
        info.os_name = "Android"
        info.os_version = _match(r"android ([0-9.]+)", ua)
    elif "windows" in ua:
        info.os_name = "Windows"
        info.os_version = next((v for needle, v in _WINDOWS_VERSIONS if needle in ua), "")
    elif "mac os x" in ua:
        info.os_name = "macOS"
        info.os_version = _match(r"mac os x ([0-9_.]+)", ua).replace("_", ".")
    elif "linux" in ua:
        info.os_name = "Linux"

    return info


def record_scan(session_factory: Callable[[], Session], bucket_id: str, signal: ScanSignal) -> Optional[str]:
    """
    Append a scan event and bump the bucket's scan counters.

    Runs after the response has been sent; any failure is logged and
    swallowed. Returns the scan event id, or None if nothing was recorded.
    """
    db = None
    try:
        db = session_factory()
        device = parse_user_agent(signal.user_agent)
        now = utcnow()

        bumped = db.execute(
            update(Bucket)
            .where(Bucket.id == bucket_id)
            .values(total_scans=Bucket.total_scans + 1, last_scanned_at=now)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            db.rollback()
            scan_counter.labels(result="error").inc()
            logger.info("scan_bucket_missing", bucket_id=bucket_id)
            return None

        event = ScanEvent(
            bucket_id=bucket_id,
            created_at=now,
            user_agent=(signal.user_agent or "")[:2000],
            referrer=(signal.referrer or "")[:2000],
            source=(signal.source or "qr_code")[:32],
            ip_address=signal.ip_address,
            device_type=device.device_type,
            browser_name=device.browser_name,
            browser_version=device.browser_version[:32],
            os_name=device.os_name,
            os_version=device.os_version[:32],
        )
        db.add(event)
        db.commit()
        scan_counter.labels(result="recorded").inc()
        logger.info("scan_recorded", bucket_id=bucket_id, device=device.device_type)
        return event.id
    except Exception as e:
        if db is not None:
            db.rollback()
        scan_counter.labels(result="error").inc()
        logger.warning("scan_record_failed", bucket_id=bucket_id, error=repr(e))
        return None
    finally:
        if db is not None:
            db.close()
