import asyncio
import aiohttp
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class DispatchClientError(Exception):
    """Non-2xx response from the dispatcher API."""

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class DispatchClient:
    def __init__(self, base_url="http://localhost:8001"):
        self.base_url = base_url.rstrip('/')

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        async with aiohttp.ClientSession() as session:
            async with session.request(method, f"{self.base_url}{path}", json=payload) as resp:
                data = await resp.json()
                if resp.status >= 400:
                    raise DispatchClientError(resp.status, data.get('error', resp.reason))
                return data

    async def health(self) -> bool:
        """Check if the dispatcher is healthy"""
        try:
            data = await self._request('GET', '/health')
            return data.get('status') == 'healthy'
        except (aiohttp.ClientError, DispatchClientError) as e:
            logger.error(f"Health check failed: {e}")
        return False

    async def submit_order(self, priority: str = 'normal') -> str:
        data = await self._request('POST', '/orders', {'priority': priority})
        return data['job_id']

    async def add_bot(self) -> int:
        data = await self._request('POST', '/bots')
        return data['worker_id']

    async def remove_bot(self) -> Optional[int]:
        """Remove the newest bot. Raises DispatchClientError(409) if refused."""
        data = await self._request('DELETE', '/bots')
        return data['worker_id']

    async def state(self) -> Dict[str, Any]:
        return await self._request('GET', '/state')


def log_state(state: Dict[str, Any]):
    metrics = state['metrics']
    logger.info(
        f"pending={metrics['pending_count']} "
        f"processing={metrics['processing_count']} "
        f"completed={metrics['completed_count']} "
        f"bots={metrics['idle_workers']} idle/{metrics['busy_workers']} busy"
    )


class DispatchMonitor:
    """Polls the dispatcher state for display."""

    def __init__(
        self,
        client: DispatchClient,
        interval: float = 1.0,
        on_state: Optional[Callable[[Dict[str, Any]], Optional[Awaitable[None]]]] = None
    ):
        self.client = client
        self.interval = interval
        self.on_state = on_state or log_state
        self.running = True

    def stop(self):
        self.running = False

    async def poll_once(self) -> bool:
        """Fetch one snapshot and hand it to on_state"""
        try:
            state = await self.client.state()
        except (aiohttp.ClientError, DispatchClientError) as e:
            logger.error(f"Error polling dispatcher: {e}")
            return False

        result = self.on_state(state)
        if asyncio.iscoroutine(result):
            await result
        return True

    async def watch_loop(self):
        """Main polling loop"""
        logger.info(f"Watching dispatcher at {self.client.base_url}...")

        while self.running:
            await self.poll_once()
            if self.running:
                await asyncio.sleep(self.interval)

    def run(self):
        """Run the monitor"""
        try:
            asyncio.run(self.watch_loop())
        except KeyboardInterrupt:
            logger.info("Shutting down...")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    DispatchMonitor(DispatchClient()).run()
