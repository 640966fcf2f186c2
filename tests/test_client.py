"""
Tests for the async dispatcher client.

The client talks to a small aiohttp app that exposes the same routes as
the Flask server, backed by a real Dispatcher on a ManualClock.

Run with: pytest tests/test_client.py
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from dispatcher.client import DispatchClient, DispatchClientError, DispatchMonitor
from dispatcher.clock import ManualClock
from dispatcher.dispatcher import Dispatcher
from dispatcher.server import job_to_dict, worker_to_dict
from dispatcher.types import DispatchPolicy, PolicyViolation, RemovalPolicy


def make_app(dispatcher):
    async def health(request):
        return web.json_response({'status': 'healthy'})

    async def submit(request):
        data = await request.json()
        try:
            job_id = dispatcher.submit_job(data.get('priority', 'normal'))
        except ValueError as e:
            return web.json_response({'error': str(e)}, status=400)
        return web.json_response({'job_id': job_id}, status=201)

    async def add_bot(request):
        return web.json_response({'worker_id': dispatcher.add_worker()}, status=201)

    async def remove_bot(request):
        try:
            worker_id = dispatcher.remove_worker()
        except PolicyViolation as e:
            return web.json_response({'error': str(e)}, status=409)
        return web.json_response({'worker_id': worker_id})

    async def state(request):
        return web.json_response({
            'pending': [job_to_dict(j) for j in dispatcher.list_pending()],
            'processing': [job_to_dict(j) for j in dispatcher.list_processing()],
            'completed': [job_to_dict(j) for j in dispatcher.list_completed()],
            'bots': [worker_to_dict(w) for w in dispatcher.list_workers()],
            'metrics': dispatcher.metrics()
        })

    app = web.Application()
    app.router.add_get('/health', health)
    app.router.add_post('/orders', submit)
    app.router.add_post('/bots', add_bot)
    app.router.add_delete('/bots', remove_bot)
    app.router.add_get('/state', state)
    return app


def run_against(dispatcher, scenario):
    async def main():
        async with test_utils.TestServer(make_app(dispatcher)) as server:
            client = DispatchClient(str(server.make_url('/')))
            return await scenario(client)
    return asyncio.run(main())


@pytest.fixture
def dispatcher():
    return Dispatcher(ManualClock(), DispatchPolicy(processing_duration=10))


class TestDispatchClient:
    """Test client calls against a live server."""

    def test_health(self, dispatcher):
        """Healthy server reports True."""
        async def scenario(client):
            return await client.health()

        assert run_against(dispatcher, scenario) is True

    def test_health_unreachable(self):
        """Connection errors report False instead of raising."""
        client = DispatchClient("http://127.0.0.1:9")

        assert asyncio.run(client.health()) is False

    def test_submit_and_state(self, dispatcher):
        """Orders and bots round-trip through the API."""
        async def scenario(client):
            await client.submit_order('normal')
            vip = await client.submit_order('high')
            bot = await client.add_bot()
            return vip, bot, await client.state()

        vip, bot, state = run_against(dispatcher, scenario)

        assert vip == 'VIP-1'
        assert bot == 1
        assert [j['job_id'] for j in state['processing']] == ['VIP-1']
        assert [j['job_id'] for j in state['pending']] == ['O-1']

    def test_bad_priority_raises(self, dispatcher):
        """Error responses raise DispatchClientError."""
        async def scenario(client):
            await client.submit_order('urgent')

        with pytest.raises(DispatchClientError) as exc_info:
            run_against(dispatcher, scenario)

        assert exc_info.value.status == 400

    def test_remove_refused(self):
        """A refused removal surfaces as a 409 error."""
        refusing = Dispatcher(
            ManualClock(),
            DispatchPolicy(processing_duration=10, removal=RemovalPolicy.REFUSE)
        )

        async def scenario(client):
            await client.add_bot()
            await client.submit_order()
            await client.remove_bot()

        with pytest.raises(DispatchClientError) as exc_info:
            run_against(refusing, scenario)

        assert exc_info.value.status == 409

    def test_remove_empty(self, dispatcher):
        """Removing from an empty pool returns None."""
        async def scenario(client):
            return await client.remove_bot()

        assert run_against(dispatcher, scenario) is None


class TestDispatchMonitor:
    """Test the polling monitor."""

    def test_polls_until_stopped(self, dispatcher):
        """Snapshots are delivered until stop() is called."""
        seen = []

        async def scenario(client):
            monitor = DispatchMonitor(client, interval=0.01)

            def on_state(state):
                seen.append(state['metrics']['pending_count'])
                if len(seen) == 3:
                    monitor.stop()

            monitor.on_state = on_state
            await client.submit_order()
            await asyncio.wait_for(monitor.watch_loop(), timeout=5)

        run_against(dispatcher, scenario)

        assert seen == [1, 1, 1]

    def test_async_callback(self, dispatcher):
        """Coroutine callbacks are awaited."""
        seen = []

        async def on_state(state):
            seen.append(state['bots'])

        async def scenario(client):
            return await DispatchMonitor(client, on_state=on_state).poll_once()

        assert run_against(dispatcher, scenario) is True
        assert seen == [[]]

    def test_poll_error_logged(self):
        """A failed poll returns False and does not raise."""
        monitor = DispatchMonitor(DispatchClient("http://127.0.0.1:9"))

        assert asyncio.run(monitor.poll_once()) is False


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
