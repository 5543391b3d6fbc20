"""Per-region crisis contact table.

Built-in regions cover New Zealand (the default), Australia, the United
States, the United Kingdom and Canada.  Deployments can add regions or
override numbers with a YAML file::

    IE:
      region: Ireland
      emergency: "112"
      hotlines:
        - {name: Samaritans, number: "116 123", can_text: false}
      web_chats: []
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from aimate.errors import ConfigError
from aimate.safety.models import CrisisHotline, CrisisResources

logger = logging.getLogger(__name__)

DEFAULT_REGION = "NZ"


def _builtin_resources() -> dict[str, CrisisResources]:
    return {
        "NZ": CrisisResources(
            code="NZ",
            region="New Zealand",
            hotlines=[
                CrisisHotline("1737, Need to Talk?", "1737", can_text=True),
                CrisisHotline("Lifeline", "0800 543 354"),
                CrisisHotline("Depression Helpline", "0800 111 757", can_text=True),
                CrisisHotline("Youthline", "0800 376 633", can_text=True),
            ],
            web_chats=[
                "https://1737.org.nz",
                "https://www.lifeline.org.nz",
                "https://www.youthline.co.nz/web-chat",
            ],
            emergency="111",
        ),
        "AU": CrisisResources(
            code="AU",
            region="Australia",
            hotlines=[
                CrisisHotline("Lifeline", "13 11 14", can_text=True),
                CrisisHotline("Beyond Blue", "1300 22 4636"),
                CrisisHotline("Kids Helpline", "1800 55 1800"),
            ],
            web_chats=["https://www.lifeline.org.au/crisis-chat"],
            emergency="000",
        ),
        "US": CrisisResources(
            code="US",
            region="United States",
            hotlines=[
                CrisisHotline("988 Suicide & Crisis Lifeline", "988", can_text=True),
                CrisisHotline("Crisis Text Line", "Text HOME to 741741", can_text=True),
            ],
            web_chats=["https://988lifeline.org/chat"],
            emergency="911",
        ),
        "UK": CrisisResources(
            code="UK",
            region="United Kingdom",
            hotlines=[
                CrisisHotline("Samaritans", "116 123"),
                CrisisHotline("Shout", "Text SHOUT to 85258", can_text=True),
            ],
            web_chats=["https://www.samaritans.org"],
            emergency="999",
        ),
        "CA": CrisisResources(
            code="CA",
            region="Canada",
            hotlines=[
                CrisisHotline("9-8-8 Suicide Crisis Helpline", "988", can_text=True),
                CrisisHotline("Kids Help Phone", "1-800-668-6868", can_text=True),
            ],
            web_chats=["https://988.ca"],
            emergency="911",
        ),
    }


def _resources_from_dict(code: str, data: dict[str, Any]) -> CrisisResources:
    try:
        hotlines = [
            CrisisHotline(
                name=str(h["name"]),
                number=str(h["number"]),
                available=str(h.get("available", "24/7")),
                can_text=bool(h.get("can_text", False)),
            )
            for h in data.get("hotlines", [])
        ]
        return CrisisResources(
            code=code,
            region=str(data.get("region", code)),
            hotlines=hotlines,
            web_chats=[str(u) for u in data.get("web_chats", [])],
            emergency=str(data.get("emergency", "")),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ConfigError(f"crisis resources for {code}: {exc}") from exc


class CrisisResourceDatabase:
    """Lookup table from region code to crisis contacts."""

    def __init__(self, default_region: str = DEFAULT_REGION) -> None:
        self._resources: dict[str, CrisisResources] = {}
        self.default_region = default_region.upper()

    def load(self, path: str | Path | None = None) -> None:
        """Load the built-in table, then overlay *path* if given."""
        self._resources = _builtin_resources()
        if path:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{path}: top level must be a mapping of region codes")
            for code, entry in data.items():
                self._resources[str(code).upper()] = _resources_from_dict(
                    str(code).upper(), entry or {}
                )
        if self.default_region not in self._resources:
            logger.warning(
                "Default region %s has no crisis resources; using %s",
                self.default_region,
                DEFAULT_REGION,
            )
            self.default_region = DEFAULT_REGION

    @property
    def regions(self) -> list[str]:
        return sorted(self._resources)

    def lookup(self, region: Optional[str]) -> tuple[CrisisResources, bool]:
        """Return ``(resources, matched)`` for *region*.

        Unknown or empty regions fall back to the default region with
        ``matched=False`` so callers can tell the user which region's
        services they are seeing.
        """
        if not self._resources:
            self.load()
        code = (region or "").strip().upper()
        if code in self._resources:
            return self._resources[code], True
        return self._resources[self.default_region], False
