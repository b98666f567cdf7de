import json
from typing import Any, Dict, List, Union
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from sqlmodel import Session

from adsync.config import settings
from adsync.connectors.meta.client import MetaClient
from adsync.database import build_engine, init_db

GRAPH = "https://graph.facebook.com/v21.0"

Page = Union[List[Dict[str, Any]], Dict[str, Any], httpx.Response]


class FakeGraph:
    """In-process stand-in for the Graph API.

    ``listings`` maps an edge such as ``act_123/ads`` to its pages; a page is
    a list of records, a raw payload dict, or a ready ``httpx.Response``.
    ``objects`` answers batch sub-requests by node id, ``images`` by hash.
    """

    def __init__(self):
        self.listings: Dict[str, List[Page]] = {}
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.images: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.batch_urls: List[str] = []

    def listing(self, edge: str, *pages: Page) -> None:
        self.listings[edge] = list(pages)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        edge = request.url.path.split("/v21.0/", 1)[-1].strip("/")

        if request.method == "POST" and edge == "":
            return self._batch(request)

        pages = self.listings.get(edge)
        if pages is None:
            return httpx.Response(200, json={"data": []})

        index = int(request.url.params.get("page", 0))
        page = pages[index]
        if isinstance(page, httpx.Response):
            return page
        if isinstance(page, dict):
            return httpx.Response(200, json=page)

        payload: Dict[str, Any] = {"data": page}
        if index + 1 < len(pages):
            payload["paging"] = {"next": f"{GRAPH}/{edge}?page={index + 1}"}
        return httpx.Response(200, json=payload)

    def _batch(self, request: httpx.Request) -> httpx.Response:
        subrequests = json.loads(request.url.params["batch"])
        results = []
        for sub in subrequests:
            relative = sub["relative_url"]
            self.batch_urls.append(relative)
            parts = urlsplit(relative)
            query = parse_qs(parts.query)

            if parts.path.endswith("/adimages"):
                hashes = json.loads(query.get("hashes", ["[]"])[0])
                data = [self.images[h] for h in hashes if h in self.images]
                results.append({"code": 200, "body": json.dumps({"data": data})})
            elif parts.path in self.objects:
                results.append({"code": 200, "body": json.dumps(self.objects[parts.path])})
            else:
                results.append(
                    {"code": 404, "body": json.dumps({"error": {"message": "Unknown object"}})}
                )
        return httpx.Response(200, json=results)


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "meta_access_token", "env-token")
    monkeypatch.setattr(settings, "meta_retry_base_delay", 0.0)
    monkeypatch.setattr(settings, "batch_delay", 0.0)
    monkeypatch.setattr(settings, "inventory_page_delay", 0.0)
    monkeypatch.setattr(settings, "alerts_url", "")
    monkeypatch.setattr(settings, "scheduler_enabled", False)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def client(graph):
    return MetaClient(
        access_token="test-token",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(graph.handler)),
        retry_base_delay=0,
    )


# ── Sample account ──

ACCOUNT = "act_123"
OWNER = "user-1"

CAMPAIGNS = [
    {"id": "c1", "name": "Prospecting", "effective_status": "ACTIVE", "daily_budget": "5000"},
    {"id": "c2", "name": "Retargeting", "effective_status": "PAUSED", "lifetime_budget": "100000"},
]

ADSETS = [
    {
        "id": "s1",
        "name": "Broad",
        "campaign_id": "c1",
        "effective_status": "ACTIVE",
        "daily_budget": "2500",
    },
    {"id": "s2", "name": "Visitors 30d", "campaign_id": "c2", "effective_status": "PAUSED"},
]

ADS = [
    {
        "id": "a1",
        "name": "Static 1",
        "adset_id": "s1",
        "effective_status": "ACTIVE",
        "creative": {"id": "cr1", "image_hash": "img1"},
    },
    {
        "id": "a2",
        "name": "Video 1",
        "adset_id": "s2",
        "effective_status": "CAMPAIGN_PAUSED",
        "creative": {"id": "cr2", "video_id": "vid-derivative"},
    },
]

INSIGHTS = [
    {
        "campaign_id": "c1",
        "campaign_name": "Prospecting",
        "adset_id": "s1",
        "adset_name": "Broad",
        "ad_id": "a1",
        "ad_name": "Static 1",
        "impressions": "1200",
        "clicks": "34",
        "spend": "41.27",
        "actions": [
            {"action_type": "link_click", "value": "34"},
            {"action_type": "purchase", "value": "2"},
        ],
        "action_values": [{"action_type": "purchase", "value": "150.5"}],
        "date_start": "2026-02-01",
        "date_stop": "2026-02-01",
    }
]


def seed_account(graph: FakeGraph, insights: Page = None) -> None:
    graph.listing(f"{ACCOUNT}/campaigns", CAMPAIGNS)
    graph.listing(f"{ACCOUNT}/adsets", ADSETS)
    graph.listing(f"{ACCOUNT}/ads", ADS)
    graph.listing(f"{ACCOUNT}/insights", INSIGHTS if insights is None else insights)
