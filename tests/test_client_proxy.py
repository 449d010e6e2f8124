import asyncio
import base64
import uuid

import pytest

from browser_bridge import api, helpers
from browser_bridge.channel import LocalChannel
from browser_bridge.client import TIMEOUT_MESSAGE, BridgeClient
from browser_bridge.proxy import HandleProxy, RemoteProxy, make_root
from browser_bridge.serialization import HostFunction
from browser_bridge.server import BridgeHost
from browser_bridge.type.error_type import (
    BridgeTimeoutError,
    ChannelClosedError,
    RemoteCallError,
    SerializationError,
)


def test_proxy_navigation_builds_paths():
    page = make_root(None, "page")
    assert isinstance(page.keyboard, RemoteProxy)
    assert page.keyboard is page.keyboard
    assert repr(page.keyboard.press) == "<RemoteProxy page.keyboard.press>"
    assert make_root(None, "page") is not page
    with pytest.raises(TypeError):
        page()
    with pytest.raises(AttributeError):
        page.__wrapped__


def test_handle_proxy_identity():
    first = HandleProxy(None, "handle_1")
    assert first == HandleProxy(None, "handle_1")
    assert first != HandleProxy(None, "handle_2")
    assert first.handle_id == "handle_1"
    assert first.click is first.click


def test_calls_through_proxies(local_bridge, fake_page):
    async def main():
        async with local_bridge() as (host, client):
            page = make_root(client, "page")
            title = await page.title()
            await page.keyboard.press("Enter", delay=5)
            await page.goto("http://localhost:3000")
            return title

    assert asyncio.run(main()) == "Fake Page"
    assert fake_page.keyboard.pressed == [("Enter", 5)]
    assert fake_page.url == "http://localhost:3000"


def test_handles_route_by_id(local_bridge, fake_page):
    async def main():
        async with local_bridge() as (host, client):
            page = make_root(client, "page")
            element = await page.query_selector(".a")
            text = await element.text_content()
            clicked = await page.click(element)
            rows = await page.query_selector_all(".row")
            size = await client.registry_size()
            return element, text, clicked, rows, size

    element, text, clicked, rows, size = asyncio.run(main())
    assert isinstance(element, HandleProxy)
    assert element.handle_id == "handle_1"
    assert text == "text of .a"
    assert clicked == ".a"
    assert [row.handle_id for row in rows] == ["handle_2", "handle_3"]
    assert size == 3
    assert fake_page.clicked == [".a"]


def test_cleared_handle_reports_remote_error(local_bridge):
    async def main():
        async with local_bridge() as (host, client):
            page = make_root(client, "page")
            element = await page.query_selector(".a")
            await client.clear_registry()
            assert await client.registry_size() == 0
            await element.text_content()

    with pytest.raises(RemoteCallError) as exc_info:
        asyncio.run(main())
    message = str(exc_info.value)
    assert message.startswith("Playwright operation failed: ")
    assert "handle_1" in message
    assert "cleared" in message


def test_remote_failure_message(local_bridge):
    async def main():
        async with local_bridge() as (host, client):
            await make_root(client, "page").fail()

    with pytest.raises(RemoteCallError) as exc_info:
        asyncio.run(main())
    assert str(exc_info.value) == "Playwright operation failed: element is not attached"
    assert exc_info.value.remote_message == "element is not attached"


def test_timeout_without_host(local_bridge):
    async def main():
        async with local_bridge(timeout=0.2, serve=False) as (host, client):
            try:
                await client.call("page", "title")
            finally:
                assert client.pending_count() == 0

    with pytest.raises(BridgeTimeoutError) as exc_info:
        asyncio.run(main())
    assert str(exc_info.value) == TIMEOUT_MESSAGE


def test_late_response_is_ignored(local_bridge):
    async def main():
        async with local_bridge(timeout=0.2) as (host, client):
            page = make_root(client, "page")
            with pytest.raises(BridgeTimeoutError):
                await page.slow(0.5, "late")
            await asyncio.sleep(0.5)
            assert host.num_finished_requests >= 1
            client._on_message({"__response": True, "id": 999, "result": {"success": True}})
            return await page.slow(0.01, "on time")

    assert asyncio.run(main()) == "on time"


def test_concurrent_calls_are_correlated(local_bridge):
    async def main():
        async with local_bridge() as (host, client):
            page = make_root(client, "page")
            return await asyncio.gather(
                page.slow(0.2, "first"),
                page.slow(0.01, "second"),
                page.slow(0.1, "third"),
            )

    assert asyncio.run(main()) == ["first", "second", "third"]


def test_call_sync_from_worker_thread(local_bridge):
    async def main():
        async with local_bridge() as (host, client):
            title = await asyncio.to_thread(client.call_sync, "page", "title")
            size = await asyncio.to_thread(client.registry_size_sync)
            return title, size

    assert asyncio.run(main()) == ("Fake Page", 0)


def test_functions_cross_as_source(local_bridge, fake_page):
    async def main():
        async with local_bridge() as (host, client):
            page = make_root(client, "page")
            await page.route("**/*.png", lambda route: route.upper())
            await page.route("**/*.css", HostFunction("lambda route: route[::-1]"))

    asyncio.run(main())
    (png_pattern, png_handler), (css_pattern, css_handler) = fake_page.routes
    assert png_pattern == "**/*.png"
    assert png_handler("abort") == "ABORT"
    assert css_pattern == "**/*.css"
    assert css_handler("abc") == "cba"


def test_closed_client_rejects_calls(local_bridge):
    async def main():
        async with local_bridge() as (host, client):
            client.close()
            assert client.closed
            await client.call("page", "title")

    with pytest.raises(ChannelClosedError):
        asyncio.run(main())


def test_module_api_and_helpers(local_bridge, fake_page):
    async def main():
        async with local_bridge() as (host, client):
            api.set_client(client)
            results = {
                "title": await api.page.title(),
                "found": await helpers.query_selector(".a"),
                "missing": await helpers.query_selector(".missing"),
                "count": await helpers.query_selector_all(".row"),
                "waited": await helpers.wait_for_selector(".a", state="attached"),
                "visible": await helpers.is_visible(".a"),
                "hidden": await helpers.is_hidden(".hidden"),
                "text": await helpers.text_content("#out"),
                "attr": await helpers.get_attribute("a", "href"),
                "evaluated": await helpers.evaluate("x => x + 1", 1),
                "shot": await helpers.screenshot(full_page=True),
                "size": await api.get_registry_size(),
            }
            await helpers.click(".go")
            await helpers.fill("#name", "bridge")
            await helpers.keyboard.press("Tab")
            await helpers.keyboard.type("hello")
            await helpers.wait_for_timeout(1)
            await api.clear_registry()
            results["size_after_clear"] = await api.get_registry_size()
            return results

    results = asyncio.run(main())
    assert results["title"] == "Fake Page"
    assert results["found"] is True
    assert results["missing"] is False
    assert results["count"] == 2
    assert results["waited"] is True
    assert results["visible"] is True
    assert results["hidden"] is True
    assert results["text"] == "text of #out"
    assert results["attr"] == "href of a"
    assert results["evaluated"] == {"expression": "x => x + 1", "arg": 1}
    assert base64.b64decode(results["shot"]) == b"\x89PNG\r\n"
    assert results["size"] == 4
    assert results["size_after_clear"] == 0
    assert fake_page.clicked == [".go"]
    assert fake_page.filled == {"#name": "bridge"}
    assert fake_page.keyboard.pressed == [("Tab", 0)]
    assert fake_page.keyboard.typed == ["hello"]


def test_unencodable_result_fails_the_call(local_bridge):
    async def main():
        async with local_bridge(serializer="msgpack") as (host, client):
            page = make_root(client, "page")
            errors = []
            for method in (page.big_number, page.broken_text):
                with pytest.raises(RemoteCallError) as exc_info:
                    await method()
                errors.append(str(exc_info.value))
            return errors, host.num_finished_requests, host.num_error_requests

    errors, finished, failed = asyncio.run(main())
    for error in errors:
        assert error.startswith("Playwright operation failed: Result is not wire serializable")
    assert (finished, failed) == (0, 2)


def test_unencodable_argument_raises_before_sending(local_bridge):
    async def main():
        async with local_bridge(serializer="msgpack") as (host, client):
            page = make_root(client, "page")
            for value in (2**70, "a\ud800b"):
                with pytest.raises(SerializationError):
                    await page.echo(value)
            return client.pending_count(), host.num_finished_requests

    assert asyncio.run(main()) == (0, 0)


@pytest.mark.parametrize("serializer", ["orjson", "msgpack"])
def test_binary_arguments_arrive_as_base64(local_bridge, serializer):
    async def main():
        async with local_bridge(serializer=serializer) as (host, client):
            return await make_root(client, "page").echo(b"\x00\x01")

    assert asyncio.run(main()) == "AAE="


def test_clients_sharing_a_channel_get_their_own_responses(root_context):
    async def main():
        name = f"shared-{uuid.uuid4().hex[:8]}"
        host = BridgeHost.from_root(root_context, LocalChannel(name))
        await host.start()
        first = BridgeClient(LocalChannel(name), timeout=5)
        second = BridgeClient(LocalChannel(name), timeout=5)
        try:
            # both calls carry correlation id 1
            return await asyncio.gather(
                first.call("page", "slow", (0.2, "first")),
                second.call("page", "slow", (0.05, "second")),
            )
        finally:
            first.close()
            second.close()
            await host.stop()

    assert asyncio.run(main()) == ["first", "second"]
