"""
Async client that keeps a live view of the cart-tracking dashboard.

Each refresh runs as its own task; starting a new one cancels whatever
refresh is still in flight, so a slow response for an old filter or
selection can never overwrite newer state. Mutations are followed by a full
refetch; local state is never patched by hand.
"""
import asyncio
import contextlib
from typing import Optional

import httpx
import structlog

import config

logger = structlog.get_logger()

API_PREFIX = "/api/admin/cart-tracking"


class SessionExpired(Exception):
    """The admin token was rejected (401/403); polling stops."""


class CartTrackingMonitor:
    def __init__(self, base_url: str = "", token: str = "", client: Optional[httpx.AsyncClient] = None,
                 interval: float = config.CART_TRACKING_POLL_SECONDS):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        if token:
            self.client.headers["Authorization"] = f"Bearer {token}"
        self.interval = interval
        self.filters = {"hasCart": False, "sortBy": "lastActivity", "order": "desc"}
        self.selected_user: Optional[str] = None
        self.users: list = []
        self.cart: Optional[dict] = None
        self.refreshes = 0
        self._refresh_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def _payload(self, response: httpx.Response) -> dict:
        if response.status_code in (401, 403):
            raise SessionExpired(f"cart tracking request rejected with {response.status_code}")
        response.raise_for_status()
        return response.json()

    def _params(self) -> dict:
        params = {"sortBy": self.filters["sortBy"], "order": self.filters["order"]}
        if self.filters["hasCart"]:
            params["hasCart"] = "true"
        return params

    async def _load(self):
        selected = self.selected_user
        try:
            users = self._payload(await self.client.get(f"{API_PREFIX}/users", params=self._params())).get("data", [])
        except httpx.HTTPError as e:
            logger.warning("Cart tracking user list unavailable", error=str(e))
            users = []

        cart = None
        if selected:
            try:
                cart = self._payload(await self.client.get(f"{API_PREFIX}/cart/{selected}")).get("data")
            except httpx.HTTPError as e:
                logger.warning("Cart unavailable", user_id=selected, error=str(e))

        # nothing is awaited below, so a cancelled load never commits
        self.users = users
        self.cart = cart
        self.refreshes += 1

    async def refresh(self) -> bool:
        """Reload users (and the selected cart). Returns False when a newer refresh superseded this one."""
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        task = asyncio.ensure_future(self._load())
        self._refresh_task = task
        await asyncio.wait({task})
        if task.cancelled():
            return False
        task.result()
        return True

    async def set_filters(self, has_cart: Optional[bool] = None, sort_by: Optional[str] = None,
                          order: Optional[str] = None) -> bool:
        if has_cart is not None:
            self.filters["hasCart"] = has_cart
        if sort_by is not None:
            self.filters["sortBy"] = sort_by
        if order is not None:
            self.filters["order"] = order
        return await self.refresh()

    async def select_user(self, user_id: Optional[str]) -> bool:
        self.selected_user = user_id
        return await self.refresh()

    async def remove_item(self, user_id: str, product_id: str) -> dict:
        response = await self.client.delete(f"{API_PREFIX}/cart/{user_id}", params={"productId": product_id})
        result = self._payload(response)
        await self.refresh()
        return result

    async def send_notification(self, user_id: str, title: str, message: str, type: str = "cart_reminder") -> dict:
        response = await self.client.post(f"{API_PREFIX}/notifications/send",
                                          json={"userId": user_id, "title": title, "message": message, "type": type})
        result = self._payload(response)
        await self.refresh()
        return result

    async def run(self):
        while True:
            try:
                await self.refresh()
            except SessionExpired:
                logger.warning("Cart tracking session expired; polling stopped")
                raise
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(self.run())
        return self._poll_task

    async def stop(self):
        for task in (self._poll_task, self._refresh_task):
            if task and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None

    async def aclose(self):
        await self.stop()
        if self._owns_client:
            await self.client.aclose()
