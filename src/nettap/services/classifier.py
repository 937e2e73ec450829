"""Traffic classification for captured requests.

Decides which outgoing requests enter the ledger and pulls module/plugin
tags out of their URLs. Acceptance criteria overlap on purpose: a stray POST
in the ledger costs less than a missed billing call.

PUBLIC API:
  - TrafficClassifier: Marker-based acceptance and billing flag
  - Classification: Result of classifying one request
  - UrlTags: Module and plugin tags of a URL
  - extract_tags: Pull module/plugin tags out of a URL
  - parse_post_data: Best-effort decoding of a request body for display
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import parse_qsl, urlsplit

from nettap.config import CaptureConfig

_MODULE_RE = re.compile(r"[?&]mod=([^&#]+)")
_PLUGIN_RE = re.compile(r"[?&]plugin=([^&#]+)")

type PostDataKind = Literal["json", "form", "raw"]


@dataclass(frozen=True)
class UrlTags:
    """Module and plugin query values of a URL, None when missing."""

    module: str | None = None
    plugin: str | None = None


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one request.

    ``accepted`` is the union of the four marker flags.
    """

    accepted: bool
    is_billing: bool
    is_ajax: bool
    is_api: bool
    is_form_post: bool
    module: str | None = None
    plugin: str | None = None


def extract_tags(url: str) -> UrlTags:
    """Pull ``mod`` and ``plugin`` query values out of a URL.

    Values are returned exactly as they appear in the URL, still
    percent-encoded.
    """
    module = _MODULE_RE.search(url)
    plugin = _PLUGIN_RE.search(url)
    return UrlTags(
        module=module.group(1) if module else None,
        plugin=plugin.group(1) if plugin else None,
    )


def parse_post_data(raw: str | None) -> tuple[PostDataKind, Any]:
    """Decode a request body for logging. Never raises.

    Returns:
        ("json", parsed) for JSON bodies, ("form", [(key, value), ...]) for
        form-encoded bodies, ("raw", raw) for anything else.
    """
    if not raw:
        return "raw", raw

    stripped = raw.strip()
    if stripped[:1] in ("{", "["):
        try:
            return "json", json.loads(stripped)
        except ValueError:
            pass

    try:
        pairs = parse_qsl(raw, keep_blank_values=True, strict_parsing=True)
    except ValueError:
        return "raw", raw
    return "form", pairs


class TrafficClassifier:
    """Marker-based request classifier.

    Attributes:
        billing_markers: URL substrings that flag billing traffic.
        ajax_markers: URL substrings that flag AJAX endpoints.
        api_markers: URL substrings that flag API paths.
        write_methods: Body-carrying methods accepted for any non-asset URL.
        asset_extensions: URL path suffixes of static assets.
    """

    def __init__(self, config: CaptureConfig | None = None):
        config = config or CaptureConfig()
        self.billing_markers = tuple(config.billing_markers)
        self.ajax_markers = tuple(config.ajax_markers)
        self.api_markers = tuple(config.api_markers)
        self.write_methods = frozenset(m.upper() for m in config.write_methods)
        self.asset_extensions = tuple(ext.lower() for ext in config.asset_extensions)

    def is_billing(self, url: str) -> bool:
        """Billing flag. Depends on the URL alone."""
        return any(marker in url for marker in self.billing_markers)

    def is_ajax(self, url: str) -> bool:
        return any(marker in url for marker in self.ajax_markers)

    def is_api(self, url: str) -> bool:
        return any(marker in url for marker in self.api_markers)

    def is_static_asset(self, url: str) -> bool:
        path = urlsplit(url).path.lower()
        return path.endswith(self.asset_extensions)

    def classify(self, method: str, url: str, headers: dict[str, str] | None = None) -> Classification:
        """Classify one outgoing request.

        Args:
            method: HTTP method.
            url: Full request URL.
            headers: Request headers. Not used by the default markers.

        Returns:
            Classification with acceptance, flags and URL tags.
        """
        is_billing = self.is_billing(url)
        is_ajax = self.is_ajax(url)
        is_api = self.is_api(url)
        is_form_post = method.upper() in self.write_methods and not self.is_static_asset(url)
        tags = extract_tags(url)

        return Classification(
            accepted=is_billing or is_ajax or is_api or is_form_post,
            is_billing=is_billing,
            is_ajax=is_ajax,
            is_api=is_api,
            is_form_post=is_form_post,
            module=tags.module,
            plugin=tags.plugin,
        )


__all__ = ["TrafficClassifier", "Classification", "UrlTags", "extract_tags", "parse_post_data"]
