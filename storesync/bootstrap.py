"""Resolve the storefront build token needed for data API URLs."""

import json
import re
from typing import Optional

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from storesync.config import STORE_BASE_URL, STORE_LANGUAGE, STORE_REGION
from storesync.errors import BootstrapError
from storesync.http_client import http_get
from storesync.logging_config import get_logger, log_sync_event

__all__ = ["storefront_url", "extract_build_id", "get_build_id"]

logger = get_logger("bootstrap")

# Fallback marker inside the embedded page data: "buildId":"c3d3bb77b"
BUILD_ID_RE = re.compile(r'"buildId"\s*:\s*"([^"]+)"')


def storefront_url(
    base_url: str = STORE_BASE_URL,
    region: str = STORE_REGION,
    language: str = STORE_LANGUAGE,
) -> str:
    return f"{base_url}/{region}/{language}"


def extract_build_id(html: str) -> Optional[str]:
    """Find the build token in the landing page markup.

    Reads the ``__NEXT_DATA__`` JSON script first and falls back to a plain
    text match anywhere in the page.
    """
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script and script.string:
        try:
            build_id = json.loads(script.string).get("buildId")
        except (ValueError, AttributeError):
            build_id = None
        if isinstance(build_id, str) and build_id:
            return build_id

    match = BUILD_ID_RE.search(html)
    return match.group(1) if match else None


def get_build_id(
    session: Optional[requests.Session] = None,
    base_url: str = STORE_BASE_URL,
    region: str = STORE_REGION,
    language: str = STORE_LANGUAGE,
) -> str:
    """Fetch the storefront landing page and return its build token.

    Raises:
        BootstrapError: If the page cannot be fetched or has no build token
    """
    url = storefront_url(base_url, region, language)
    logger.info(f"Fetching storefront page to find buildId: {url}")

    try:
        resp = http_get(url, session=session)
    except requests.exceptions.RequestException as e:
        raise BootstrapError(f"Could not fetch storefront page {url}: {e}") from e

    build_id = extract_build_id(resp.text)
    if not build_id:
        raise BootstrapError(
            f"Could not find buildId in {url}; the storefront layout may have changed"
        )

    logger.info(f"Found buildId: {build_id}")
    log_sync_event("bootstrap_ok", {"build_id": build_id, "url": url}, logger_name="bootstrap")
    return build_id
