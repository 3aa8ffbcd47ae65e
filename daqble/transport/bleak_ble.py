# daqble/transport/bleak_ble.py
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional

from bleak import BleakClient
from bleak.exc import BleakError

from .base import BleTransport, RawLinkState
from .errors import TransportOpenError


class BleakTransport(BleTransport):
    """
    BLE GATT transport implemented via bleak.

    bleak is asyncio-only, so the transport owns a private event loop running on a
    daemon thread. Requests schedule coroutines on that loop and return immediately;
    results reach the listener from the loop thread.
    """

    def __init__(
        self,
        *,
        connect_timeout_s: float = 10.0,
        write_with_response: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()
        self.connect_timeout_s = float(connect_timeout_s)
        self.write_with_response = bool(write_with_response)
        self._log = logger or logging.getLogger(__name__)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

        self._client: Optional[BleakClient] = None
        self._address: Optional[str] = None
        self._link_active = False
        self._write_busy = False
        self._lock = threading.Lock()

    # ---------------- Handle ----------------
    def handle_address(self) -> Optional[str]:
        with self._lock:
            return self._address if self._client is not None else None

    def connect(self, address: str) -> bool:
        self._ensure_loop()
        with self._lock:
            old = self._client
            self._client = BleakClient(
                address,
                disconnected_callback=self._on_bleak_disconnected,
                timeout=self.connect_timeout_s,
            )
            self._address = address
            self._link_active = False
            self._write_busy = False
            client = self._client

        # events from the replaced client are dropped once self._client moves on
        self._submit(self._replace(old, client))
        return True

    def reconnect(self) -> bool:
        with self._lock:
            client = self._client
            loop = self._loop
        if client is None or loop is None:
            return False
        if client.is_connected:
            # nothing to resume; report the live link again from the loop thread
            loop.call_soon_threadsafe(self._emit_state, client, RawLinkState.CONNECTED)
            return True
        self._submit(self._connect(client))
        return True

    def disconnect(self) -> bool:
        with self._lock:
            client = self._client
        if client is None or self._loop is None:
            return False
        self._submit(self._disconnect(client))
        return True

    def discover_services(self) -> bool:
        with self._lock:
            client = self._client
        if client is None or self._loop is None:
            return False
        self._submit(self._discover(client))
        return True

    def subscribe_notifications(self, char_id: str, enabled: bool) -> bool:
        with self._lock:
            client = self._client
        if client is None or self._loop is None:
            return False
        self._submit(self._subscribe(client, char_id, enabled))
        return True

    def write(self, char_id: str, data: bytes) -> bool:
        with self._lock:
            client = self._client
            if client is None or self._loop is None or self._write_busy:
                return False
            self._write_busy = True
        self._submit(self._write(client, char_id, bytes(data)))
        return True

    def close(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
            self._address = None
            loop = self._loop
            thread = self._thread
            self._loop = None
            self._thread = None

        if loop is None:
            return

        if client is not None:
            fut = asyncio.run_coroutine_threadsafe(self._release(client), loop)
            try:
                fut.result(timeout=self.connect_timeout_s)
            except Exception:
                self._log.exception("BLE_CLOSE_DISCONNECT_FAILED")

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=2.0)
        loop.close()

    # ---------------- Coroutines (loop thread) ----------------
    async def _replace(self, old: Optional[BleakClient], client: BleakClient) -> None:
        # the old link is fully released before the new one starts connecting
        if old is not None:
            await self._release(old)
        await self._connect(client)

    async def _connect(self, client: BleakClient) -> None:
        self._emit_state(client, RawLinkState.CONNECTING)
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._log.warning("BLE_CONNECT_FAILED address=%s err=%s", client.address, e)
            self._mark_disconnected(client)
            return
        self._emit_state(client, RawLinkState.CONNECTED)

    async def _disconnect(self, client: BleakClient) -> None:
        self._emit_state(client, RawLinkState.DISCONNECTING)
        try:
            await client.disconnect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._log.warning("BLE_DISCONNECT_FAILED address=%s err=%s", client.address, e)
        self._mark_disconnected(client)

    async def _release(self, client: BleakClient) -> None:
        if not client.is_connected:
            return
        try:
            await client.disconnect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._log.warning("BLE_RELEASE_FAILED address=%s err=%s", client.address, e)

    async def _discover(self, client: BleakClient) -> None:
        try:
            chars = [c.uuid for service in client.services for c in service.characteristics]
        except (BleakError, AttributeError) as e:
            self._log.warning("BLE_DISCOVERY_FAILED err=%s", e)
            chars = None
        if not self._is_current(client):
            self._log.debug("BLE_STALE_DISCOVERY address=%s", client.address)
            return
        if chars is None:
            self._call("on_services_discovered", False, [])
            return
        self._log.debug("BLE_SERVICES_DISCOVERED chars=%s", chars)
        self._call("on_services_discovered", True, chars)

    async def _subscribe(self, client: BleakClient, char_id: str, enabled: bool) -> None:
        try:
            if enabled:
                await client.start_notify(char_id, lambda _sender, data: self._on_notify(client, char_id, data))
            else:
                await client.stop_notify(char_id)
        except (BleakError, ValueError) as e:
            self._log.warning("BLE_SUBSCRIBE_FAILED char=%s enabled=%s err=%s", char_id, enabled, e)

    async def _write(self, client: BleakClient, char_id: str, data: bytes) -> None:
        ok = True
        try:
            await client.write_gatt_char(char_id, data, response=self.write_with_response)
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            self._log.warning("BLE_WRITE_FAILED char=%s len=%d err=%s", char_id, len(data), e)
            ok = False
        with self._lock:
            if client is not self._client:
                return
            self._write_busy = False
        self._call("on_characteristic_write_completed", char_id, ok)

    # ---------------- Callbacks ----------------
    def _on_notify(self, client: BleakClient, char_id: str, data: bytearray) -> None:
        if self._is_current(client):
            self._call("on_characteristic_notified", char_id, bytes(data))

    def _on_bleak_disconnected(self, client: BleakClient) -> None:
        self._log.info("BLE_LINK_LOST address=%s", client.address)
        self._mark_disconnected(client)

    def _mark_disconnected(self, client: BleakClient) -> None:
        # bleak may report the same disconnect from both the callback and disconnect();
        # a replaced or closed client reports nothing
        with self._lock:
            if client is not self._client or not self._link_active:
                return
            self._link_active = False
            self._write_busy = False
        self._call("on_connection_state_changed", RawLinkState.DISCONNECTED)

    def _emit_state(self, client: BleakClient, raw: RawLinkState) -> None:
        with self._lock:
            if client is not self._client:
                self._log.debug("BLE_STALE_STATE address=%s state=%s", client.address, raw.value)
                return
            self._link_active = True
        self._call("on_connection_state_changed", raw)

    def _is_current(self, client: BleakClient) -> bool:
        with self._lock:
            return client is self._client

    def _call(self, method: str, *args: Any) -> None:
        listener = self.listener
        if listener is None:
            return
        try:
            getattr(listener, method)(*args)
        except Exception:
            self._log.exception("BLE_LISTENER_ERROR method=%s", method)

    # ---------------- Loop thread ----------------
    def _ensure_loop(self) -> None:
        with self._lock:
            if self._loop is not None:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _run() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            thread = threading.Thread(target=_run, name="bleak-loop", daemon=True)
            thread.start()
            if not ready.wait(timeout=2.0):
                raise TransportOpenError("bleak event loop did not start")
            self._loop = loop
            self._thread = thread

    def _submit(self, coro: Coroutine[Any, Any, None]) -> None:
        loop = self._loop
        if loop is None:
            coro.close()
            return
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        fut.add_done_callback(self._log_future_error)

    def _log_future_error(self, fut: Any) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            self._log.error("BLE_TASK_FAILED err=%r", exc)
