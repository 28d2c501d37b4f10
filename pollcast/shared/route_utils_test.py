import asyncio
import pytest
from pollcast.shared.route_utils import extract_client_id, parse_last_message_time


class TestParseLastMessageTime:
    """Cursor parsing never fails, it falls back to 'never seen'"""

    @pytest.mark.parametrize("raw, expected", [
        (None, 0),
        ("", 0),
        ("abc", 0),
        ("nan", 0),
        ("inf", 0),
        ("0", 0),
        ("1700000000123", 1700000000123),
        ("150.0", 150),
    ])
    def test_parse(self, raw, expected):
        assert parse_last_message_time(raw) == expected


class TestExtractClientId:
    def test_keeps_given_id(self):
        assert asyncio.run(extract_client_id("dashboard-1")) == "dashboard-1"

    def test_generates_short_id(self):
        cid = asyncio.run(extract_client_id(None))
        assert cid.startswith("client-")
        assert len(cid) == len("client-") + 4
