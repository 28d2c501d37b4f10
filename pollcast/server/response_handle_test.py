import json
import threading
import asyncio
import pytest
from pollcast.server.response_handle import HandleClosedError, PendingResponse
from pollcast.shared.models import LatestMessage


class TestPendingResponse:
    """Test suite for the one-shot response handle"""

    def test_starts_open(self):
        handle = PendingResponse("c")
        assert handle.state == "open"
        assert not handle.done
        assert handle.body is None

    def test_json_finishes_and_fires_finish_listeners(self):
        fired = []
        handle = PendingResponse("c")
        handle.on("finish", lambda h: fired.append("finish"))
        handle.on("close", lambda h: fired.append("close"))

        handle.json({"message": "hi", "time": 7})

        assert handle.state == "finished"
        assert handle.body == LatestMessage(message="hi", time=7)
        assert fired == ["finish"]

    def test_json_twice_raises(self):
        handle = PendingResponse("c")
        handle.json(LatestMessage(message="a", time=1))
        with pytest.raises(HandleClosedError, match="already finished"):
            handle.json(LatestMessage(message="b", time=2))
        assert handle.body.message == "a"

    def test_json_after_close_raises(self):
        handle = PendingResponse("c")
        handle.close()
        with pytest.raises(HandleClosedError, match="already closed"):
            handle.json(LatestMessage(message="a", time=1))

    def test_close_fires_close_listeners_once(self):
        fired = []
        handle = PendingResponse("c")
        handle.on("close", lambda h: fired.append(h.client_id))
        handle.close()
        handle.close()
        assert fired == ["c"]

    def test_close_after_finish_is_a_noop(self):
        fired = []
        handle = PendingResponse("c")
        handle.on("close", lambda h: fired.append("close"))
        handle.json(LatestMessage(message="a", time=1))
        handle.close()
        assert handle.state == "finished"
        assert fired == []

    def test_remove_listener(self):
        fired = []
        listener = lambda h: fired.append("x")
        handle = PendingResponse("c")
        handle.on("finish", listener)
        handle.remove_listener("finish", listener)
        handle.remove_listener("finish", listener)
        handle.json(LatestMessage(message="a", time=1))
        assert fired == []

    def test_failing_listener_does_not_block_others(self):
        fired = []

        def explode(h):
            raise RuntimeError("boom")

        handle = PendingResponse("c")
        handle.on("finish", explode)
        handle.on("finish", lambda h: fired.append("ok"))
        handle.json(LatestMessage(message="a", time=1))
        assert fired == ["ok"]

    def test_wait_returns_body(self):
        async def scenario():
            handle = PendingResponse("c")
            waiter = asyncio.create_task(handle.wait())
            await asyncio.sleep(0)
            assert not waiter.done()
            handle.json(LatestMessage(message="late", time=3))
            return await waiter

        assert asyncio.run(scenario()) == LatestMessage(message="late", time=3)

    def test_wait_raises_when_closed(self):
        async def scenario():
            handle = PendingResponse("c")
            waiter = asyncio.create_task(handle.wait())
            await asyncio.sleep(0)
            handle.close()
            await waiter

        with pytest.raises(HandleClosedError, match="closed before delivery"):
            asyncio.run(scenario())

    def test_unencodable_body_raises_and_leaves_handle_open(self):
        handle = PendingResponse("c")
        with pytest.raises(ValueError):
            handle.json({"message": object(), "time": 1})
        assert handle.state == "open"
        assert handle.content is None

    def test_json_stores_wire_content(self):
        handle = PendingResponse("c")
        handle.json(LatestMessage(message={"a": 1}, time=9))
        assert json.loads(handle.content) == {"message": {"a": 1}, "time": 9}

    def test_fail_closes_with_reason(self):
        fired = []
        handle = PendingResponse("c")
        handle.on("close", lambda h: fired.append(h.error))
        handle.fail("cannot encode")
        handle.fail("again")
        assert handle.closed
        assert fired == ["cannot encode"]

    def test_fail_after_finish_is_a_noop(self):
        handle = PendingResponse("c")
        handle.json(LatestMessage(message="a", time=1))
        handle.fail("late")
        assert handle.state == "finished"
        assert handle.error is None

    def test_completion_from_another_thread_wakes_waiter(self):
        async def scenario():
            handle = PendingResponse("c")
            waiter = asyncio.create_task(handle.wait())
            await asyncio.sleep(0)
            worker = threading.Thread(target=handle.json, args=(LatestMessage(message="t", time=4),))
            worker.start()
            worker.join()
            return await asyncio.wait_for(waiter, timeout=2)

        assert asyncio.run(scenario()) == LatestMessage(message="t", time=4)
