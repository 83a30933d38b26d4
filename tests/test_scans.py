import pytest

from photodrop.models import Bucket, ScanEvent
from photodrop.services.scans import ScanSignal, parse_user_agent, record_scan

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
WIN_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
WIN_EDGE = WIN_CHROME + " Edg/120.0.2210.91"
MAC_FIREFOX = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0"
ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.43 Mobile Safari/537.36"
)
IPAD = "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 Version/16.6 Safari/604.1"


@pytest.mark.parametrize(
    "ua,expected",
    [
        (IPHONE, ("mobile", "Safari", "17", "iOS", "17.2")),
        (WIN_CHROME, ("desktop", "Chrome", "120", "Windows", "10")),
        (WIN_EDGE, ("desktop", "Edge", "120", "Windows", "10")),
        (MAC_FIREFOX, ("desktop", "Firefox", "121", "macOS", "10.15")),
        (ANDROID, ("mobile", "Chrome", "120", "Android", "14")),
        (IPAD, ("tablet", "Safari", "16", "iOS", "16.6")),
        ("", ("unknown", "unknown", "", "unknown", "")),
        ("curl/8.4.0", ("unknown", "unknown", "", "unknown", "")),
    ],
)
def test_parse_user_agent(ua, expected):
    info = parse_user_agent(ua)
    assert (info.device_type, info.browser_name, info.browser_version, info.os_name, info.os_version) == expected


def test_record_scan_appends_event_and_bumps_counters(db, session_factory, bucket):
    signal = ScanSignal(user_agent=IPHONE, referrer="https://example.com/e", ip_address="10.0.0.1")

    first = record_scan(session_factory, bucket.id, signal)
    second = record_scan(session_factory, bucket.id, ScanSignal())

    assert first and second and first != second
    db.expire_all()
    b = db.get(Bucket, bucket.id)
    assert b.total_scans == 2
    assert b.last_scanned_at is not None

    event = db.get(ScanEvent, first)
    assert event.device_type == "mobile"
    assert event.os_name == "iOS"
    assert event.source == "qr_code"
    assert event.ip_address == "10.0.0.1"


def test_record_scan_never_raises(session_factory):
    assert record_scan(session_factory, "missing-bucket", ScanSignal()) is None

    def broken_factory():
        raise RuntimeError("database is down")

    assert record_scan(broken_factory, "whatever", ScanSignal()) is None
