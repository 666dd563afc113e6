# change_control/infrastructure/messaging/rabbitmq_publisher.py

import asyncio
import json
from typing import Any, Dict, Optional

import aio_pika


class RabbitMQPublisher:
    """
    Topic-exchange publisher for lifecycle notifications. Implements NotificationPublisher.
    Connects lazily on first publish; declared exchanges are reused until close().
    """

    def __init__(self, url: str, *, prefetch_count: int = 10):
        self._url = url
        self._prefetch_count = prefetch_count
        self._connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchanges: Dict[str, aio_pika.abc.AbstractExchange] = {}
        self._connect_lock = asyncio.Lock()

    async def connect(self):
        async with self._connect_lock:
            if self._channel is not None:
                return
            connection = await aio_pika.connect_robust(self._url)
            channel = await connection.channel()
            await channel.set_qos(prefetch_count=self._prefetch_count)
            self._connection = connection
            self._channel = channel

    async def _exchange(self, name: str) -> aio_pika.abc.AbstractExchange:
        exchange = self._exchanges.get(name)
        if exchange is None:
            exchange = await self._channel.declare_exchange(
                name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
            self._exchanges[name] = exchange
        return exchange

    async def publish(
        self,
        exchange_name: str,
        routing_key: str,
        message: Dict[str, Any],
        idempotency_key: str,
    ):
        if self._channel is None:
            await self.connect()

        exchange = await self._exchange(exchange_name)
        msg = aio_pika.Message(
            body=json.dumps(message, default=str).encode(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=idempotency_key,
            headers={"idempotency_key": idempotency_key},
        )
        await exchange.publish(msg, routing_key=routing_key)

    async def close(self):
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        self._channel = None
        self._exchanges.clear()
