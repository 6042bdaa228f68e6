"""Playwright adapter for the chat page.

Implements the core ChatHost port. All DOM and fiber access happens inside
small page-side scripts so that each probe is a single round trip; the
results come back as plain JSON and are rebuilt on the Python side.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from playwright.async_api import ElementHandle, Page

from adapters.fiber_snapshot import build_tree
from core.drift import LandmarkProbe
from core.models import ThreadInfo, UiNode
from core.parsers import PARSED_FIELDS
from core.traversal import FIBER_KEY_PREFIXES

LOGGER = logging.getLogger(__name__)

CONTAINER_SELECTORS = (
    '[data-testid="conversation-panel-messages"]',
    "#main .copyable-area",
    'div[role="application"]',
)

SNAPSHOT_MAX_NODES = 5000
SNAPSHOT_MAX_DEPTH = 400
PROPS_MAX_DEPTH = 4
PROPS_MAX_EXTRA_KEYS = 100

# Serializes the fiber subtree under the container, plus the container's
# sibling chain. Props are reduced to JSON-safe values; ids exposed as
# objects with ``_serialized`` are flattened to that string.
_SNAPSHOT_SCRIPT = """
({selectors, prefixes, fields, maxNodes, maxDepth, propsDepth, maxKeys}) => {
  const container = selectors.map((s) => document.querySelector(s)).find((e) => e !== null);
  if (!container) return null;
  const keys = Object.keys(container);
  let fiber = null;
  for (const prefix of prefixes) {
    const key = keys.find((k) => k.startsWith(prefix));
    if (key && container[key] !== null && typeof container[key] === "object") {
      fiber = container[key];
      break;
    }
  }
  if (!fiber) return null;

  // Message models expose their fields as prototype getters, so the parsed
  // fields are read by name first and never count against the key cap.
  const safe = (value, depth) => {
    if (value === null || value === undefined) return null;
    const t = typeof value;
    if (t === "string" || t === "boolean") return value;
    if (t === "number") return Number.isFinite(value) ? value : null;
    if (t !== "object") return null;
    if (typeof value._serialized === "string") return value._serialized;
    if (value instanceof Node || depth > propsDepth) return null;
    if (Array.isArray(value)) return value.slice(0, 50).map((v) => safe(v, depth + 1));
    const out = {};
    const read = (k) => {
      try {
        out[k] = safe(value[k], depth + 1);
      } catch (e) {
        out[k] = null;
      }
    };
    for (const k of fields) {
      if (k in value) read(k);
    }
    let extra = 0;
    for (const k of Object.keys(value)) {
      if (extra >= maxKeys) break;
      if (k in out || k === "children" || k.startsWith("_")) continue;
      read(k);
      extra += 1;
    }
    return out;
  };

  let count = 0;
  const walk = (node, depth) => {
    if (!node || count >= maxNodes || depth > maxDepth) return null;
    count += 1;
    const type = node.type;
    let typeOut = null;
    if (typeof type === "string") {
      typeOut = type;
    } else if (type && (typeof type === "function" || typeof type === "object")) {
      const name = type.name || (type.render && type.render.name) || "";
      typeOut = {name, displayName: typeof type.displayName === "string" ? type.displayName : null};
    }
    const record = {
      tag: node.tag,
      type: typeOut,
      key: node.key === null || node.key === undefined ? null : String(node.key),
      props: safe(node.memoizedProps, 0) || {},
      index: node.index || 0,
      children: [],
    };
    let child = node.child;
    while (child && count < maxNodes) {
      const childRecord = walk(child, depth + 1);
      if (childRecord) record.children.push(childRecord);
      child = child.sibling;
    }
    return record;
  };
  const root = walk(fiber, 0);
  if (!root) return null;
  // The container's own siblings are part of the searched range too.
  root.siblings = [];
  let sibling = fiber.sibling;
  while (sibling && count < maxNodes) {
    const record = walk(sibling, 0);
    if (record) root.siblings.push(record);
    sibling = sibling.sibling;
  }
  return root;
}
"""

_LANDMARK_SCRIPT = """
(selectors) => selectors.map((selector) => {
  const el = document.querySelector(selector);
  if (!el) return null;
  return {
    tag: el.tagName.toLowerCase(),
    classes: Array.from(el.classList),
    data: Array.from(el.attributes)
      .filter((attr) => attr.name.startsWith("data-"))
      .map((attr) => [attr.name, attr.value]),
  };
})
"""

_THREAD_INFO_SCRIPT = """
() => {
  const header = document.querySelector('[data-testid="conversation-header"] span[title]');
  return {
    name: header ? header.getAttribute("title") : null,
    isGroup: document.querySelector('[data-testid="group-subject"]') !== null,
  };
}
"""


class PlaywrightScrollTarget:
    """ScrollTarget backed by a live element handle."""

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    async def get_scroll_top(self) -> float:
        return float(await self._handle.evaluate("(el) => el.scrollTop"))

    async def set_scroll_top(self, value: float) -> None:
        await self._handle.evaluate("(el, value) => { el.scrollTop = value; }", value)


def _probe_from_raw(raw: Any) -> Optional[LandmarkProbe]:
    if not isinstance(raw, dict):
        return None
    return LandmarkProbe(
        tag_name=str(raw.get("tag", "")),
        class_list=tuple(str(name) for name in raw.get("classes") or ()),
        data_attributes=tuple((str(name), str(value)) for name, value in raw.get("data") or ()),
    )


class PlaywrightHost:
    """ChatHost implementation for a Playwright page showing the chat."""

    def __init__(self, page: Page, container_selectors: Sequence[str] = CONTAINER_SELECTORS) -> None:
        self._page = page
        self._container_selectors = tuple(container_selectors)

    async def wait_for_chat(self, timeout_ms: float = 60_000) -> None:
        """Wait until one of the conversation containers is attached."""

        await self._page.wait_for_selector(", ".join(self._container_selectors), timeout=timeout_ms)

    async def probe_landmarks(self, selectors: Sequence[str]) -> list[Optional[LandmarkProbe]]:
        raw = await self._page.evaluate(_LANDMARK_SCRIPT, list(selectors))
        return [_probe_from_raw(item) for item in raw]

    async def get_tree_root(self) -> Optional[UiNode]:
        snapshot = await self._page.evaluate(
            _SNAPSHOT_SCRIPT,
            {
                "selectors": list(self._container_selectors),
                "prefixes": list(FIBER_KEY_PREFIXES),
                "fields": list(PARSED_FIELDS),
                "maxNodes": SNAPSHOT_MAX_NODES,
                "maxDepth": SNAPSHOT_MAX_DEPTH,
                "propsDepth": PROPS_MAX_DEPTH,
                "maxKeys": PROPS_MAX_EXTRA_KEYS,
            },
        )
        if snapshot is None:
            LOGGER.debug("No fiber found on the conversation container")
        return build_tree(snapshot)

    async def read_thread_info(self) -> ThreadInfo:
        raw = await self._page.evaluate(_THREAD_INFO_SCRIPT)
        # The page does not expose a stable chat id; the session assigns one.
        return ThreadInfo(id="", name=raw.get("name") or "Unknown Chat", is_group=bool(raw.get("isGroup")))

    async def find_scroll_target(self) -> Optional[PlaywrightScrollTarget]:
        for selector in self._container_selectors:
            handle = await self._page.query_selector(selector)
            if handle is not None:
                return PlaywrightScrollTarget(handle)
        return None
