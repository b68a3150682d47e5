"""
Tokyo Open Data Catalog Client

Fetches dataset records from the CKAN `package_search` action of the Tokyo
Metropolitan Government open data catalog and converts each dataset into
one summary `Item`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.errors import NetworkError, StrategyTimeoutError
from ..embeddings.models import Item, ItemMetadata

logger = logging.getLogger("search.sources.open_data")

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "子育て": ["子育て", "保育", "育児", "児童"],
    "教育": ["教育", "学校", "学習"],
    "福祉": ["福祉", "介護", "高齢者"],
    "環境": ["環境", "気象", "ごみ"],
    "交通": ["交通", "道路", "電車"],
    "防災": ["防災", "災害", "避難"],
    "経済": ["経済", "産業", "企業"],
    "観光": ["観光", "文化", "イベント"],
}

CATALOG_TAGS = ["東京都", "オープンデータ"]


class OpenDataClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        rows: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or str(settings.open_data_base_url)).rstrip("/")
        self.rows = rows or settings.open_data_rows
        self.timeout = timeout if timeout is not None else settings.open_data_timeout
        self._transport = transport

    async def _request(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call a CKAN action and return its `result` payload.

        Raises NetworkError for transport failures, non-2xx answers and
        `success: false` envelopes; StrategyTimeoutError on timeout.
        """
        url = f"{self.base_url}/action/{action}"
        headers = {"User-Agent": "opendata-search-server/1.0"}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise StrategyTimeoutError(f"Catalog request timed out: {action}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Catalog request failed: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise NetworkError("Catalog returned invalid JSON") from exc

        if not isinstance(data, dict) or not data.get("success"):
            raise NetworkError(f"Catalog action {action} returned an unsuccessful response")

        return data.get("result") or {}

    async def fetch_content_items(self, query: Optional[str] = None) -> List[Item]:
        """
        Search the catalog and return one summary item per dataset.

        Parameters
        ----------
        query : Optional[str]
            Free-text catalog query. None fetches the whole catalog
            (bounded by `rows`).
        """
        params = {
            "q": query.strip() if query and query.strip() else "*:*",
            "rows": self.rows,
            "start": 0,
            "sort": "score desc, metadata_modified desc",
        }

        result = await self._request("package_search", params)
        datasets = result.get("results") or []

        items: List[Item] = []
        for dataset in datasets:
            try:
                items.append(dataset_to_item(dataset))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping malformed dataset %s: %s",
                    dataset.get("id") if isinstance(dataset, dict) else "?",
                    exc,
                )

        logger.info(
            "Catalog search completed: q=%s total=%s returned=%d",
            params["q"][:50],
            result.get("count"),
            len(items),
        )
        return items


# ---------------------------------------------------------------------
# Dataset conversion
# ---------------------------------------------------------------------

def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def extract_category(dataset: Dict[str, Any]) -> str:
    groups = dataset.get("groups") or []
    if groups:
        return groups[0].get("title") or groups[0].get("name") or "general"

    tags = " ".join(t.get("name", "") for t in dataset.get("tags") or [])
    text = f"{dataset.get('title', '')} {dataset.get('notes') or ''} {tags}".lower()

    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category

    return "general"


def summarize_dataset(dataset: Dict[str, Any], last_updated: datetime) -> str:
    organization = (dataset.get("organization") or {}).get("title") or "東京都"
    tags = "、".join(t.get("name", "") for t in dataset.get("tags") or [])
    resources = "\n".join(
        f"- {r.get('name') or 'データファイル'} ({r.get('format') or '不明'})"
        for r in dataset.get("resources") or []
    )

    return (
        f"# {dataset['title']}\n\n"
        f"## 概要\n{dataset.get('notes') or 'データセットの詳細な説明は提供されていません。'}\n\n"
        f"## データセット情報\n"
        f"- **提供組織**: {organization}\n"
        f"- **最終更新**: {last_updated.date().isoformat()}\n"
        f"- **ライセンス**: {dataset.get('license_title') or '未指定'}\n"
        f"- **タグ**: {tags}\n\n"
        f"## 利用可能なリソース\n{resources}\n\n"
        "東京都オープンデータポータルより提供されている公式データです。"
    )


def dataset_to_item(dataset: Dict[str, Any]) -> Item:
    last_updated = _parse_timestamp(
        dataset.get("metadata_modified") or dataset.get("metadata_created")
    )
    tags = [t["name"] for t in dataset.get("tags") or [] if t.get("name")]

    return Item(
        id=f"{dataset['id']}-summary",
        title=dataset["title"],
        description=dataset.get("notes") or "東京都オープンデータ",
        content=summarize_dataset(dataset, last_updated),
        category=extract_category(dataset),
        tags=tags + CATALOG_TAGS,
        metadata=ItemMetadata(
            source=f"東京都オープンデータ: {dataset['title']}",
            last_updated=last_updated,
            language="ja",
        ),
    )
