import pytest

from exam_engine.services.ip_utils import get_client_ip, is_client_in_lab_subnets, is_ip_in_subnet


def test_forwarded_for_takes_first_hop():
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.9"}
    assert get_client_ip(headers, "127.0.0.1") == "203.0.113.7"


def test_header_fallback_order():
    assert get_client_ip({"x-real-ip": " 10.0.0.9 "}) == "10.0.0.9"
    assert get_client_ip({"cf-connecting-ip": "198.51.100.4"}) == "198.51.100.4"
    assert get_client_ip({}, "127.0.0.1") == "127.0.0.1"
    assert get_client_ip({"x-forwarded-for": " , "}) is None


@pytest.mark.parametrize(
    "ip, subnet, expected",
    [
        ("10.12.16.123", "10.12.16.0/24", True),
        ("10.12.17.123", "10.12.16.0/24", False),
        ("10.12.16.5", "10.12.16.5", True),
        ("10.12.16.123", "10.12.16.1/24", True),
        ("2001:db8::1", "2001:db8::/32", True),
        ("not-an-ip", "10.12.16.0/24", False),
        ("10.12.16.123", "garbage", False),
    ],
)
def test_is_ip_in_subnet(ip, subnet, expected):
    assert is_ip_in_subnet(ip, subnet) is expected


def test_lab_subnets():
    labs = ["10.1.0.0/16", "", "192.168.5.0/24"]
    assert is_client_in_lab_subnets("192.168.5.77", labs)
    assert not is_client_in_lab_subnets("172.16.0.1", labs)
    assert not is_client_in_lab_subnets(None, labs)
