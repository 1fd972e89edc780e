from __future__ import annotations

from dataclasses import dataclass

UNKNOWN_REGION = "unknown"
LOCAL_REGION = "local network"
PRIVATE_REGION = "private network"
UNKNOWN_DEVICE = "unknown device"
NO_REMARK = "no remark"
LOOPBACK_IP = "127.0.0.1"


@dataclass(slots=True)
class VisitRecord:
    """One recorded, non-blocked access event."""

    id: int
    visitor_ip: str
    region: str
    visit_time: str  # "YYYY-MM-DD HH:MM:SS", fixed local offset
    user_agent: str
    is_valid: bool = True

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "visitor_ip": self.visitor_ip,
            "region": self.region,
            "visit_time": self.visit_time,
            "user_agent": self.user_agent,
        }


@dataclass(slots=True)
class BlacklistEntry:
    id: int
    blocked_ip: str
    add_time: str
    remark: str = NO_REMARK

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "blocked_ip": self.blocked_ip,
            "add_time": self.add_time,
            "remark": self.remark,
        }


@dataclass(slots=True)
class TrendPoint:
    visit_date: str  # "YYYY-MM-DD"
    visitor_count: int

    def to_api_dict(self) -> dict:
        return {"visit_date": self.visit_date, "visitor_count": self.visitor_count}


@dataclass(slots=True)
class TopIp:
    visitor_ip: str
    region: str  # region of the most recent visit from this ip
    visit_count: int

    def to_api_dict(self) -> dict:
        return {
            "visitor_ip": self.visitor_ip,
            "region": self.region,
            "visit_count": self.visit_count,
        }
