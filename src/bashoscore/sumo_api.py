"""sumo-api.com banzuke client with retry and backoff."""

import logging
import time
from typing import Any

import requests

from bashoscore.basho_id import BashoId
from bashoscore.models import DAYS, BanzukeEntry, DayResult
from bashoscore.rank import Rank, RankName
from bashoscore.util import FetchError, MalformedRank

logger = logging.getLogger(__name__)

BASE_URL = "https://www.sumo-api.com/api"
HEADERS = {
    "User-Agent": "bashoscore/0.1",
}
MAX_RETRIES = 3
BACKOFF_BASE = 1  # seconds: 1, 2, 4
TIMEOUT = (10, 20)  # connect, read

# sumo-api bout result -> day result
_RESULTS: dict[str, DayResult] = {
    "win": True,
    "fusen win": True,
    "loss": False,
    "fusen loss": False,
    "absent": None,
    "": None,
}

_LONG_NAMES = {name.long_name: name for name in RankName}


def banzuke_url(basho_id: BashoId, division: str = "Makuuchi") -> str:
    return f"{BASE_URL}/basho/{basho_id.id}/banzuke/{division}"


def _decode(resp: requests.Response, url: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise FetchError(f"Invalid JSON from {url}: {e}") from e


def _get(url: str) -> requests.Response:
    """One GET; any status other than 200 is a FetchError."""
    try:
        resp = requests.get(url, headers=HEADERS, timeout=TIMEOUT)
    except requests.RequestException as e:
        raise FetchError(f"Connection error for {url}: {e}") from e
    if resp.status_code != 200:
        raise FetchError(f"HTTP {resp.status_code} for {url}")
    return resp


def fetch_json(url: str) -> Any:
    """GET a JSON document, retrying failed requests with exponential backoff.

    A body that is not JSON is not retried.
    """
    attempt = 1
    while True:
        logger.debug("Fetching %s (attempt %d/%d)", url, attempt, MAX_RETRIES)
        try:
            resp = _get(url)
            break
        except FetchError as e:
            if attempt == MAX_RETRIES:
                raise
            delay = BACKOFF_BASE * 2 ** (attempt - 1)
            logger.warning("%s; retry %d/%d in %ds", e, attempt, MAX_RETRIES - 1, delay)
            time.sleep(delay)
            attempt += 1
    return _decode(resp, url)


def parse_rank(text: str) -> Rank:
    """Parse either ``Y1e`` or the long ``Yokozuna 1 East`` form."""
    parts = text.split()
    if len(parts) == 1:
        return Rank.parse(text)
    if len(parts) != 3 or parts[0] not in _LONG_NAMES:
        raise MalformedRank(f"Unrecognized rank {text!r}")
    return Rank.parse(f"{_LONG_NAMES[parts[0]].letter}{parts[1]}{parts[2][:1]}")


def _day_results(record: list[dict]) -> tuple[tuple[DayResult, ...], bool]:
    results: list[DayResult] = [None] * DAYS
    absent = 0
    for i, bout in enumerate(record[:DAYS]):
        result = bout.get("result", "")
        if result not in _RESULTS:
            logger.warning("Unknown bout result %r on day %d", result, i + 1)
            continue
        results[i] = _RESULTS[result]
        if result == "absent":
            absent += 1
    fought = any(r is not None for r in results)
    return tuple(results), absent > 0 and not fought


def parse_banzuke_response(data: dict) -> list[BanzukeEntry]:
    """Decode a banzuke response; rikishi with unparsable ranks are skipped."""
    entries = []
    for side in ("east", "west"):
        for rikishi in data.get(side) or []:
            name = rikishi.get("shikonaEn", "")
            try:
                rank = parse_rank(rikishi.get("rank", ""))
            except MalformedRank as e:
                logger.warning("Skipping %s: %s", name, e)
                continue
            # newly retired rikishi might be missing the record
            results, is_kyujo = _day_results(rikishi.get("record") or [])
            entries.append(BanzukeEntry(
                name=name, rank=rank, results=results, is_kyujo=is_kyujo,
            ))
    logger.info("Parsed %d rikishi from banzuke response", len(entries))
    return entries


def day_complete(data: dict, day: int) -> bool:
    """True once every rikishi has a result (or absence) recorded for ``day``."""
    idx = day - 1
    if not 0 <= idx < DAYS:
        raise ValueError(f"day must be 1..{DAYS}, got {day}")
    for side in ("east", "west"):
        for rikishi in data.get(side) or []:
            record = rikishi.get("record") or []
            if idx >= len(record) or record[idx].get("result", "") == "":
                return False
    return True


def fetch_banzuke(basho_id: BashoId) -> tuple[dict, list[BanzukeEntry]]:
    """Fetch the makuuchi banzuke; returns the raw response and decoded rows."""
    data = fetch_json(banzuke_url(basho_id))
    return data, parse_banzuke_response(data)
