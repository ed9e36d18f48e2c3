"""
Deriv WebSocket API client with request/response correlation and candle streams
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import websockets
from aiolimiter import AsyncLimiter

from ..errors import DerivAPIError

logger = logging.getLogger(__name__)

# Suppress websockets debug output
logging.getLogger('websockets').setLevel(logging.WARNING)

PING_INTERVAL = 30  # seconds


def stream_key(symbol: str, granularity: int) -> str:
    return f"candle_{symbol}_{int(granularity)}"


class DerivClient:
    """Single WebSocket connection to the Deriv API.

    Every request gets a ``req_id``; replies resolve the matching future.
    ``ohlc`` stream messages are routed to the callback registered for
    their symbol and granularity.
    """

    def __init__(self, ws_url: str, token: Optional[str] = None,
                 requests_per_second: int = 5, request_timeout: float = 30.0):
        self.ws_url = ws_url
        self.token = token
        self.request_timeout = request_timeout
        self.limiter = AsyncLimiter(max_rate=requests_per_second, time_period=1)

        self.connection = None
        self.is_connected = False
        self.account: Optional[str] = None

        self._req_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self._listen_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self, timeout: int = 10):
        """Open the connection, start the listener and authorize if a token is set"""
        self.connection = await asyncio.wait_for(
            websockets.connect(
                self.ws_url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=10
            ),
            timeout=timeout
        )
        self.is_connected = True
        logger.info(f"Connected to Deriv WebSocket: {self.ws_url}")

        self._listen_task = asyncio.create_task(self._listen())
        self._ping_task = asyncio.create_task(self._ping_loop())

        if self.token:
            await self.authorize()
        else:
            logger.warning("No DERIV_API_TOKEN set, running unauthorized (market data only)")

    async def disconnect(self):
        """Close the connection and stop background tasks"""
        for task in (self._ping_task, self._listen_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self.connection:
            await self.connection.close()
        self.connection = None
        self.is_connected = False
        self._fail_pending(ConnectionError("Connection closed"))
        logger.info("Disconnected from Deriv WebSocket")

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request and wait for the reply carrying the same req_id"""
        if not self.is_connected or not self.connection:
            raise ConnectionError("Not connected to Deriv WebSocket")

        self._req_id += 1
        req_id = self._req_id
        payload = dict(request, req_id=req_id)
        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future

        try:
            async with self.limiter:
                msg_type = next(iter(request))
                logger.debug(f"Sending: {msg_type} (ID: {req_id})")
                await self.connection.send(json.dumps(payload))

            return await asyncio.wait_for(future, timeout=self.request_timeout)
        finally:
            self._pending.pop(req_id, None)

    async def authorize(self) -> Dict[str, Any]:
        response = await self.send({'authorize': self.token})
        self.account = response['authorize'].get('loginid')
        logger.info(f"Authorized for account: {self.account}")
        return response

    async def get_candles(self, symbol: str, granularity: int, count: int = 100) -> List[Dict[str, Any]]:
        """Fetch historical candles; the last one is still forming"""
        response = await self.send({
            'ticks_history': symbol,
            'adjust_start_time': 1,
            'count': count,
            'end': 'latest',
            'style': 'candles',
            'granularity': granularity
        })
        return response.get('candles', [])

    async def subscribe_candles(self, symbol: str, granularity: int,
                                callback: Callable[[Dict[str, Any]], Any]) -> Dict[str, Any]:
        """Subscribe to ohlc updates for the symbol and granularity"""
        key = stream_key(symbol, granularity)
        self._subscriptions[key] = callback
        try:
            return await self.send({
                'ticks_history': symbol,
                'adjust_start_time': 1,
                'count': 1,
                'end': 'latest',
                'style': 'candles',
                'granularity': granularity,
                'subscribe': 1
            })
        except Exception:
            self._subscriptions.pop(key, None)
            raise

    async def get_latest_price(self, symbol: str) -> float:
        response = await self.send({
            'ticks_history': symbol,
            'count': 1,
            'end': 'latest',
            'style': 'ticks'
        })
        return float(response['history']['prices'][-1])

    async def _ping_loop(self):
        while self.is_connected:
            await asyncio.sleep(PING_INTERVAL)
            try:
                await self.send({'ping': 1})
            except Exception as e:
                logger.warning(f"Ping failed: {e}")

    async def _listen(self):
        try:
            async for message in self.connection:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON received: {e}")
                    continue
                await self._handle_message(data)
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Deriv WebSocket connection closed")
        finally:
            self.is_connected = False
            self._fail_pending(ConnectionError("Connection closed"))

    async def _handle_message(self, data: Dict[str, Any]):
        msg_type = data.get('msg_type')

        if msg_type == 'ohlc':
            await self._handle_ohlc(data)
        elif msg_type not in ('tick', 'ping'):
            logger.debug(f"Received: {msg_type} (ID: {data.get('req_id', 'N/A')})")

        future = self._pending.get(data.get('req_id'))
        if future is None or future.done():
            return

        error = data.get('error')
        if error:
            future.set_exception(DerivAPIError(
                error.get('code', 'UnknownError'),
                error.get('message', ''),
                msg_type
            ))
        else:
            future.set_result(data)

    async def _handle_ohlc(self, data: Dict[str, Any]):
        ohlc = data.get('ohlc') or {}
        callback = self._subscriptions.get(stream_key(ohlc.get('symbol', ''), ohlc.get('granularity', 0)))
        if callback is None:
            return

        try:
            result = callback(ohlc)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in ohlc callback for {ohlc.get('symbol')}: {e}")

    def _fail_pending(self, exc: Exception):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
