from __future__ import annotations

import asyncio

import pytest

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from adapters.playwright_host import PlaywrightHost
from core.parsers import extract_messages
from core.traversal import by_type, collect_nodes

PAGE = '<div role="application" id="panel"><span class="x2 x1" data-testid="row">hi</span></div>'

# Host-style message models: fields live behind prototype getters backed by
# ``__x_`` own properties, and ids are objects carrying ``_serialized``.
INSTALL_FIBER = """
() => {
  class Msg {
    constructor(id, t, body) {
      this.__x_id = {_serialized: id};
      this.__x_t = t;
      this.__x_body = body;
      this.__x_from = {_serialized: "1@c.us"};
      this.__x_ack = 3;
    }
    get id() { return this.__x_id; }
    get t() { return this.__x_t; }
    get body() { return this.__x_body; }
    get from() { return this.__x_from; }
    get ack() { return this.__x_ack; }
  }
  function Message() {}
  const crowded = {};
  for (let i = 0; i < 150; i++) crowded["k" + i] = i;
  const container = {tag: 5, type: "div", key: null, memoizedProps: {}, index: 0, child: null, sibling: null};
  container.child = {
    tag: 0, type: Message, key: "m1", index: 0, child: null, sibling: null,
    memoizedProps: Object.assign({}, crowded, {message: new Msg("m1", 1700000000, "first")}),
  };
  container.sibling = {
    tag: 0, type: Message, key: "m2", index: 1, child: null, sibling: null,
    memoizedProps: {msg: new Msg("m2", 1700000001, "second")},
  };
  document.getElementById("panel")["__reactFiber$test"] = container;
}
"""


async def _with_host(check) -> None:
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch()
        except PlaywrightError as exc:
            pytest.skip(f"Chromium is not installed: {exc}")
        try:
            page = await browser.new_page()
            await page.set_content(PAGE)
            await page.evaluate(INSTALL_FIBER)
            await check(PlaywrightHost(page))
        finally:
            await browser.close()


def test_snapshot_reads_getter_backed_message_models() -> None:
    async def check(host: PlaywrightHost) -> None:
        root = await host.get_tree_root()
        batch = extract_messages(collect_nodes(root, by_type("Message")))

        assert batch.errors == ()
        assert [message.id for message in batch.messages] == ["m1", "m2"]
        first = batch.messages[0]
        assert first.timestamp == 1700000000
        assert first.body == "first"
        assert first.sender.id == "1@c.us"
        assert first.status.value == "read"

    asyncio.run(_with_host(check))


def test_landmarks_and_scroll_target() -> None:
    async def check(host: PlaywrightHost) -> None:
        probe, missing = await host.probe_landmarks(['[data-testid="row"]', "#nope"])
        assert probe.tag_name == "span"
        assert probe.class_list == ("x2", "x1")
        assert probe.data_attributes == (("data-testid", "row"),)
        assert missing is None

        target = await host.find_scroll_target()
        assert target is not None
        assert await target.get_scroll_top() == 0

    asyncio.run(_with_host(check))
