# exam_engine/services/ip_utils.py
"""
IP 유틸
- 프록시 헤더에서 client ip 추출
- 실습실 subnet(CIDR) 포함 여부
"""
import ipaddress
import logging
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

_IP_HEADERS = ("x-real-ip", "cf-connecting-ip")


def get_client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    """x-forwarded-for 는 여러 개일 수 있으므로 첫 번째 값을 쓴다."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    for name in _IP_HEADERS:
        value = headers.get(name)
        if value and value.strip():
            return value.strip()

    return fallback


def is_ip_in_subnet(client_ip: str, subnet: str) -> bool:
    """
    is_ip_in_subnet("10.12.16.123", "10.12.16.0/24") -> True
    is_ip_in_subnet("10.12.17.123", "10.12.16.0/24") -> False
    잘못된 값은 False (경고 로그만 남김)
    """
    try:
        network = ipaddress.ip_network(subnet.strip(), strict=False)
        address = ipaddress.ip_address(client_ip.strip())
    except ValueError:
        logger.warning("[IP] invalid ip/subnet client_ip=%r subnet=%r", client_ip, subnet)
        return False
    return address in network


def is_client_in_lab_subnets(client_ip: Optional[str], subnets: Iterable[str]) -> bool:
    if not client_ip:
        return False
    return any(is_ip_in_subnet(client_ip, s) for s in subnets if s)
