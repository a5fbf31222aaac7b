"""
Location privacy helpers
========================

Providers browsing open pickup requests never see an exact address or
coordinate.  Each request is reduced to:

* **Area label**      -- district / neighbourhood parsed from a Korean
  address (``"서울특별시 강남구 역삼동 123"`` -> ``"강남구 역삼동"``).
  Unparseable input is returned as-is.
* **Destination type** -- keyword classification of the destination text.
* **Area cell**       -- H3 hexagon at a coarse resolution (default 7,
  ~5.16 km²), usable for map clustering without revealing the point.
"""

from __future__ import annotations

import re

import h3

from .enums import DestinationType

_METRO = (
    "서울특별시|부산광역시|대구광역시|인천광역시|광주광역시|"
    "대전광역시|울산광역시|세종특별자치시"
)
_PROVINCE = "경기|강원|충북|충남|전북|전남|경북|경남|제주"

_AREA_PATTERNS = (
    # "서울특별시 강남구 역삼동"
    re.compile(
        rf"(?:{_METRO})\s+([가-힣]+구|[가-힣]+군)\s+([가-힣]+동|[가-힣]+읍|[가-힣]+면)"
    ),
    # "경기도 성남시 분당구 정자동"
    re.compile(
        rf"(?:{_PROVINCE})도\s+[가-힣]+시\s+([가-힣]+구|[가-힣]+군)\s+"
        r"([가-힣]+동|[가-힣]+읍|[가-힣]+면)"
    ),
    # "경기도 성남시 분당구"
    re.compile(rf"(?:{_PROVINCE})도\s+[가-힣]+시\s+([가-힣]+구|[가-힣]+군)"),
)

_DESTINATION_KEYWORDS: tuple[tuple[DestinationType, tuple[str, ...]], ...] = (
    (DestinationType.ACADEMY, ("학원", "아카데미", "academy")),
    (
        DestinationType.SCHOOL,
        ("학교", "school", "elementary", "middle", "high"),
    ),
    (DestinationType.HOME, ("집", "자택", "주거지", "home", "residence")),
)


def extract_area(address: str | None) -> str:
    """Reduce a full address to its district / neighbourhood label."""
    if not address:
        return ""
    for pattern in _AREA_PATTERNS:
        match = pattern.search(address)
        if match:
            return " ".join(g for g in match.groups() if g)
    return address


def destination_type(text: str | None) -> DestinationType:
    """Classify a destination by keyword (first match wins)."""
    if not text:
        return DestinationType.OTHER
    normalized = text.lower()
    for kind, keywords in _DESTINATION_KEYWORDS:
        if any(k in normalized for k in keywords):
            return kind
    return DestinationType.OTHER


def area_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to a coarse H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)
