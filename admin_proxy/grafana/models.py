from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class GrafanaProxyRequest(BaseModel):
    endpoint: Optional[str] = None
    accessToken: Optional[str] = None


class DashboardSummary(BaseModel):
    uid: Optional[str] = None
    title: Optional[str] = None
    uri: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    tags: List[str] = []
    isStarred: bool = False

    @classmethod
    def from_search_hit(cls, hit: Dict[str, Any]) -> "DashboardSummary":
        return cls(
            **{
                name: hit[name]
                for name in cls.model_fields
                if hit.get(name) is not None
            }
        )


class DashboardList(BaseModel):
    dashboards: List[DashboardSummary]
    count: int
    timestamp: str


class HealthReport(BaseModel):
    status: str
    grafanaStatus: Any = None
    timestamp: str
