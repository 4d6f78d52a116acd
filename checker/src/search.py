"""App Store 検索 (iTunes Search API) クライアント.

検索結果の並び順（上流の関連度順）をそのまま順位とみなし、ローカルで並べ替えない。
順位は時間で変わるため、毎回キャッシュ無効化パラメータを付けてリクエストする。
"""

from __future__ import annotations

import logging
import random
import time

import requests

from src.config import (
    REQUEST_INTERVAL_MAX,
    REQUEST_INTERVAL_MIN,
    REQUEST_TIMEOUT,
    SEARCH_ENTITY,
    SEARCH_LIMIT,
    SEARCH_URL,
    USER_AGENT,
)
from src.errors import TransportError
from src.models import SearchResult

logger = logging.getLogger(__name__)


def fetch_search_results(keyword: str, country: str) -> dict:
    """App Store 検索 API を呼び出し、レスポンス JSON を返す.

    Args:
        keyword: 検索キーワード
        country: ストアの国コード (例: "us")

    Returns:
        レスポンス JSON (dict)。

    Raises:
        TransportError: 通信エラー、非 2xx レスポンス、JSON デコード失敗時。
    """
    params = {
        "term": keyword,
        "country": country,
        "entity": SEARCH_ENTITY,
        "limit": SEARCH_LIMIT,
        "nocache": int(time.time() * 1000),
    }
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Cache-Control": "no-cache",
    }

    try:
        resp = requests.get(SEARCH_URL, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as e:
        logger.error("検索 API 呼び出し失敗: keyword=%s, country=%s, error=%s", keyword, country, e)
        raise TransportError(f"search failed for {keyword!r} ({country}): {e}") from e
    except ValueError as e:
        logger.error("検索 API の JSON デコード失敗: keyword=%s, country=%s, error=%s", keyword, country, e)
        raise TransportError(f"invalid JSON for {keyword!r} ({country}): {e}") from e


def parse_search_results(payload: dict) -> list[SearchResult]:
    """レスポンス JSON の results 配列から検索結果リストを作る.

    trackId の無い要素や dict でない要素も順位を1つ消費する（上流の並びをそのまま使う）。

    Raises:
        TransportError: レスポンスが dict でない、または results が配列でない場合。
    """
    if not isinstance(payload, dict):
        raise TransportError(f"unexpected response body: {type(payload).__name__}")
    items = payload.get("results")
    if items is None:
        return []
    if not isinstance(items, list):
        raise TransportError(f"unexpected results field: {type(items).__name__}")

    results: list[SearchResult] = []
    for i, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            logger.warning("不正な検索結果要素をスキップ: position=%d, item=%r", i, item)
            results.append(SearchResult(position=i, track_id="", name=""))
            continue
        track_id = item.get("trackId")
        results.append(SearchResult(
            position=i,
            track_id="" if track_id is None else str(track_id),
            name=item.get("trackName", ""),
        ))
    return results


def find_app_rank(results: list[SearchResult], app_id: str) -> int | None:
    """検索結果リストから指定アプリの順位を見つける.

    Returns:
        順位（1始まり）。見つからなければ None（圏外）。
    """
    target = str(app_id).strip()
    for r in results:
        if r.track_id == target:
            return r.position
    return None


def rank(keyword: str, country: str, app_id: str) -> int | None:
    """キーワード検索での指定アプリの順位を返す. 圏外なら None.

    Raises:
        TransportError: 検索 API の呼び出しに失敗した場合。
    """
    payload = fetch_search_results(keyword, country)
    results = parse_search_results(payload)
    logger.debug("検索結果: keyword=%s, %d 件", keyword, len(results))
    return find_app_rank(results, app_id)


def wait_interval() -> None:
    """リクエスト間隔をランダムで待機する."""
    interval = random.uniform(REQUEST_INTERVAL_MIN, REQUEST_INTERVAL_MAX)
    time.sleep(interval)
