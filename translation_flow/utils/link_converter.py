"""Rewrite in-content links so they point at a locale's storefront."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit


logger = logging.getLogger("translation_flow.link_converter")

_ANCHOR_HREF_RE = re.compile(r"""<a([^>]*?)href=["']([^"']+)["']([^>]*)>""", re.I)
_LINK_HREF_RE = re.compile(r"""<link([^>]*?)href=["']([^"']+)["']([^>]*)>""", re.I)
_LOCALE_PREFIX_RE = re.compile(r"^/[a-z]{2}(-[A-Z]{2})?(/|$)")
_LOCALE_PREFIX_STRIP_RE = re.compile(r"^/[a-z]{2}(-[A-Z]{2})?/")
_SKIP_PREFIXES = ("mailto:", "tel:", "sms:", "javascript:", "data:", "#")


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return ""
    return locale.split("-")[0].lower()


def should_skip_url(url: object) -> bool:
    if not url or not isinstance(url, str):
        return True
    if url.startswith(_SKIP_PREFIXES):
        return True
    if ":" in url and not url.startswith(("http://", "https://")):
        return True
    return False


def has_locale_prefix(path: str) -> bool:
    return bool(_LOCALE_PREFIX_RE.match(path))


def is_internal_url(url_host: str | None, primary_host: str | None) -> bool:
    if not url_host or not primary_host:
        return False
    host = re.sub(r"^www\.", "", url_host)
    primary = re.sub(r"^www\.", "", primary_host)
    return host == primary or host.endswith(f".{primary}") or primary.endswith(f".{host}")


def transform_url(
    url: str,
    target: Mapping[str, Any],
    primary_host: str | None,
    primary_url: str | None,
    *,
    strategy: str = "conservative",
    preserve_query_params: bool = True,
    preserve_anchors: bool = True,
) -> str:
    if should_skip_url(url):
        return url

    kind = target.get("type")
    if url.startswith("/") and not url.startswith("//"):
        if has_locale_prefix(url):
            return url
        if kind == "subfolder":
            return f"/{target.get('suffix')}{url}"
        if kind in ("subdomain", "domain"):
            return f"{target.get('url')}{url}"
        return url

    if strategy == "aggressive" and url.startswith(("http://", "https://")):
        try:
            parts = urlsplit(url)
        except ValueError:
            return url
        if not is_internal_url(parts.netloc, primary_host):
            return url
        path = _LOCALE_PREFIX_STRIP_RE.sub("/", parts.path or "/", count=1)
        query = f"?{parts.query}" if preserve_query_params and parts.query else ""
        anchor = f"#{parts.fragment}" if preserve_anchors and parts.fragment else ""
        if kind == "subfolder":
            return f"{primary_url}/{target.get('suffix')}{path}{query}{anchor}"
        if kind in ("subdomain", "domain"):
            return f"{target.get('url')}{path}{query}{anchor}"
    return url


def _target_config(locale: str, market_config: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    mappings = market_config.get("mappings") or {}
    return mappings.get(locale) or mappings.get(normalize_locale(locale))


def convert_links_for_locale(
    html: str,
    locale: str | None,
    market_config: Mapping[str, Any] | None,
    *,
    enabled: bool = True,
    strategy: str = "conservative",
    preserve_query_params: bool = True,
    preserve_anchors: bool = True,
) -> str:
    """Rewrite ``<a href>`` (and ``<link href>`` when aggressive) for ``locale``.

    Unknown locales, disabled conversion and any failure leave the HTML as is.
    """
    if not html or not locale or not market_config or not enabled:
        return html

    target = _target_config(locale, market_config)
    if not target:
        logger.debug("No market mapping for locale %s", locale)
        return html

    primary_host = market_config.get("primary_host") or market_config.get("primaryHost")
    primary_url = market_config.get("primary_url") or market_config.get("primaryUrl")
    url_options = {
        "strategy": strategy,
        "preserve_query_params": preserve_query_params,
        "preserve_anchors": preserve_anchors,
    }

    def _anchor(match: "re.Match[str]") -> str:
        before, url, after = match.groups()
        converted = transform_url(url, target, primary_host, primary_url, **url_options)
        return f'<a{before}href="{converted}"{after}>'

    def _link(match: "re.Match[str]") -> str:
        before, url, after = match.groups()
        if not (url.startswith("/") or is_internal_url(urlsplit(url).netloc, primary_host)):
            return match.group(0)
        converted = transform_url(url, target, primary_host, primary_url, **url_options)
        return f'<link{before}href="{converted}"{after}>'

    try:
        converted_html = _ANCHOR_HREF_RE.sub(_anchor, html)
        if strategy == "aggressive":
            converted_html = _LINK_HREF_RE.sub(_link, converted_html)
    except (TypeError, ValueError, AttributeError) as exc:
        logger.error("Link conversion failed for %s: %s", locale, exc)
        return html
    return converted_html


def validate_market_config(market_config: Mapping[str, Any] | None) -> bool:
    if not market_config:
        return False
    for key in ("primary_host", "primary_url", "mappings"):
        camel = re.sub(r"_(\w)", lambda m: m.group(1).upper(), key)
        if not (market_config.get(key) or market_config.get(camel)):
            logger.warning("Market config is missing %s", key)
            return False
    return isinstance(market_config.get("mappings"), Mapping)
