#!/usr/bin/env python3
"""
BIFROST - Bundle Submitter

Send a finished bundle to the block engine and find out what happened to it.

Lifecycle of one bundle:

    Built -> Submitted -> Accepted | Dropped | TimedOut | RelaySubmitError

There is no way back to Submitted. A dropped or timed-out bundle is rebuilt
by the caller with a fresh blockhash and submitted as a new bundle; its old
signatures are never replayed.

Results are pushed: feeds publish into a BundleResultChannel and
await_result() simply waits on the channel for the bundle id, racing a
timeout. A timeout is not a failure: the bundle may still land, and only
on-chain state can settle it.
"""

import asyncio
import json
from collections import OrderedDict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

import websockets
from solders.transaction import VersionedTransaction

from bifrost.exceptions import RelaySubmitError
from bifrost.logger import BifrostLogger

DEFAULT_RESULT_TIMEOUT_SECONDS = 30.0
DEFAULT_BUNDLE_SIZE_WARNING = 50_000  # bytes, advisory; the relay owns the real limit

NO_LEADER_MARKER = "no connected leader"
NO_LEADER_REASON = "no-leader"


class BundleOutcome(Enum):
    ACCEPTED = "accepted"
    DROPPED = "dropped"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class BundleResult:
    """Terminal outcome of one submitted bundle. Produced once, never retried."""

    outcome: BundleOutcome
    bundle_id: Optional[str] = None
    reason: Optional[str] = None
    slot: Optional[int] = None
    resolved_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def accepted(cls, bundle_id: str, slot: Optional[int] = None) -> "BundleResult":
        return cls(BundleOutcome.ACCEPTED, bundle_id=bundle_id, slot=slot)

    @classmethod
    def dropped(cls, bundle_id: str, reason: str) -> "BundleResult":
        return cls(BundleOutcome.DROPPED, bundle_id=bundle_id, reason=classify_drop(reason))

    @classmethod
    def timed_out(cls, bundle_id: str) -> "BundleResult":
        return cls(BundleOutcome.TIMED_OUT, bundle_id=bundle_id)

    @classmethod
    def error(cls, cause: str, bundle_id: Optional[str] = None) -> "BundleResult":
        return cls(BundleOutcome.ERROR, bundle_id=bundle_id, reason=cause)

    @property
    def landed(self) -> bool:
        return self.outcome == BundleOutcome.ACCEPTED

    @property
    def ambiguous(self) -> bool:
        """True when on-chain state must be checked to know what happened."""
        return self.outcome == BundleOutcome.TIMED_OUT


def classify_drop(reason: str) -> str:
    """Normalize relay drop messages; the leader-schedule drop gets a stable tag."""
    if reason and NO_LEADER_MARKER in reason.lower():
        return NO_LEADER_REASON
    return reason or "dropped"


class BundleResultChannel:
    """
    Out-of-band result delivery keyed by bundle id.

    Feeds call publish(); awaiting code calls wait(). A result that arrives
    before anyone waits is held (bounded) until it is claimed.
    """

    MAX_UNCLAIMED = 256

    def __init__(self):
        self._waiters: Dict[str, asyncio.Future] = {}
        self._unclaimed: "OrderedDict[str, BundleResult]" = OrderedDict()

    def expect(self, bundle_id: str) -> asyncio.Future:
        """Register interest in a bundle id (idempotent)."""
        future = self._waiters.get(bundle_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            early = self._unclaimed.pop(bundle_id, None)
            if early is not None:
                future.set_result(early)
            self._waiters[bundle_id] = future
        return future

    def pending(self) -> list[str]:
        """Bundle ids someone is still waiting on."""
        return [bundle_id for bundle_id, f in self._waiters.items() if not f.done()]

    def publish(self, result: BundleResult) -> None:
        bundle_id = result.bundle_id
        if bundle_id is None:
            return
        future = self._waiters.get(bundle_id)
        if future is None:
            self._unclaimed[bundle_id] = result
            while len(self._unclaimed) > self.MAX_UNCLAIMED:
                self._unclaimed.popitem(last=False)
            return
        if not future.done():
            future.set_result(result)

    def fail(self, error: Exception) -> None:
        """The result stream itself broke; every pending waiter gets the error."""
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(error)

    async def wait(self, bundle_id: str, timeout: float) -> Optional[BundleResult]:
        """The pushed result, or None when `timeout` expires first."""
        future = self.expect(bundle_id)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if self._waiters.get(bundle_id) is future:
                del self._waiters[bundle_id]


class BundleSubmitter:
    """
    submit() makes exactly one sendBundle call; await_result() resolves the
    outcome from the channel. Neither retries.
    """

    def __init__(
        self,
        relay,
        channel: BundleResultChannel,
        logger: BifrostLogger,
        timeout_seconds: float = DEFAULT_RESULT_TIMEOUT_SECONDS,
        size_warning_bytes: int = DEFAULT_BUNDLE_SIZE_WARNING,
        signature_feed: Optional["SignatureFeed"] = None,
    ):
        self.relay = relay
        self.channel = channel
        self.logger = logger
        self.timeout = timeout_seconds
        self.size_warning_bytes = size_warning_bytes
        self.signature_feed = signature_feed

    def _check_size(self, transactions: Sequence[VersionedTransaction]) -> int:
        sizes = [len(bytes(tx)) for tx in transactions]
        for index, size in enumerate(sizes):
            self.logger.debug(f"   TX #{index + 1}: {size} bytes")
        total = sum(sizes)
        if total > self.size_warning_bytes:
            self.logger.warning(
                f"Large bundle: {total} bytes across {len(sizes)} transactions "
                f"(advisory threshold {self.size_warning_bytes})"
            )
        return total

    async def submit(self, transactions: Sequence[VersionedTransaction]) -> str:
        """
        Send the bundle. Returns the relay-assigned bundle id.

        Raises:
            ValueError: empty bundle
            RelaySubmitError: relay unreachable or bundle rejected
        """
        if not transactions:
            raise ValueError("Bundle must contain at least one transaction")

        total = self._check_size(transactions)
        bundle_id = await self.relay.send_bundle(list(transactions))
        self.channel.expect(bundle_id)
        if self.signature_feed is not None:
            self.signature_feed.watch(bundle_id, transactions[-1])
        self.logger.bundle_submitted(bundle_id, len(transactions), total)
        return bundle_id

    async def await_result(self, bundle_id: str, timeout: Optional[float] = None) -> BundleResult:
        """Wait for the pushed result; TIMED_OUT if nothing arrives in time."""
        try:
            return await self._resolve(bundle_id, self.timeout if timeout is None else timeout)
        finally:
            # Dropped and timed-out bundles never confirm; stop watching either way.
            if self.signature_feed is not None:
                self.signature_feed.unwatch(bundle_id)

    async def _resolve(self, bundle_id: str, timeout: float) -> BundleResult:
        try:
            result = await self.channel.wait(bundle_id, timeout)
        except Exception as e:
            result = BundleResult.error(f"result stream failed: {e}", bundle_id=bundle_id)
            self.logger.bundle_result(bundle_id, result.outcome.value, result.reason)
            return result

        if result is None:
            result = BundleResult.timed_out(bundle_id)
            self.logger.bundle_result(
                bundle_id, result.outcome.value, f"no result after {timeout:.0f}s; may still land"
            )
            return result

        self.logger.bundle_result(bundle_id, result.outcome.value, result.reason or "")
        return result

    async def send(
        self, transactions: Sequence[VersionedTransaction], timeout: Optional[float] = None
    ) -> BundleResult:
        """submit() then await_result(); a submit failure becomes ERROR."""
        try:
            bundle_id = await self.submit(transactions)
        except RelaySubmitError as e:
            self.logger.error("Bundle submission failed", e)
            return BundleResult.error(str(e))
        return await self.await_result(bundle_id, timeout)


# ═══════════════════════════════════════════════════════════════════════════
#                               RESULT FEEDS
# ═══════════════════════════════════════════════════════════════════════════


class InflightStatusFeed:
    """
    Relays block-engine inflight statuses into the channel for every bundle
    id the channel is waiting on.

    Landed -> accepted, Failed/Invalid -> dropped, Pending -> keep waiting.
    """

    def __init__(
        self,
        relay,
        channel: BundleResultChannel,
        logger: BifrostLogger,
        interval_seconds: float = 1.0,
    ):
        self.relay = relay
        self.channel = channel
        self.logger = logger
        self.interval = interval_seconds
        self.running = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self.running = True
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def dispatch(self, status: dict) -> None:
        bundle_id = status.get("bundle_id")
        state = status.get("status")
        if not bundle_id or not state:
            return
        if state == "Landed":
            self.channel.publish(BundleResult.accepted(bundle_id, slot=status.get("landed_slot")))
        elif state in ("Failed", "Invalid"):
            self.channel.publish(BundleResult.dropped(bundle_id, status.get("reason") or state.lower()))

    async def poll_once(self) -> None:
        pending = self.channel.pending()
        if not pending:
            return
        try:
            statuses = await self.relay.get_inflight_bundle_statuses(pending)
        except RelaySubmitError as e:
            self.logger.warning(f"Inflight status query failed: {e}")
            return
        for status in statuses:
            if status:
                self.dispatch(status)

    async def _run(self) -> None:
        while self.running:
            await self.poll_once()
            await asyncio.sleep(self.interval)


class SignatureFeed:
    """
    Marks a bundle accepted as soon as the RPC websocket confirms the
    signature of its final transaction (signatureSubscribe).
    """

    def __init__(self, ws_url: str, channel: BundleResultChannel, logger: BifrostLogger):
        self.ws_url = ws_url
        self.channel = channel
        self.logger = logger
        self._tasks: Dict[str, asyncio.Task] = {}

    def watch(self, bundle_id: str, transaction: VersionedTransaction) -> None:
        signature = str(transaction.signatures[0])
        self._tasks[bundle_id] = asyncio.create_task(self._subscribe(bundle_id, signature))

    def unwatch(self, bundle_id: str) -> None:
        """Drop the subscription for a bundle whose outcome is already known."""
        task = self._tasks.pop(bundle_id, None)
        if task is not None and not task.done():
            task.cancel()

    @property
    def watching(self) -> list[str]:
        return list(self._tasks)

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def handle_message(self, bundle_id: str, message: dict) -> bool:
        """Publish from one websocket message. True once a result was published."""
        if message.get("method") != "signatureNotification":
            return False
        result = message.get("params", {}).get("result", {})
        value = result.get("value", {})
        slot = result.get("context", {}).get("slot")
        err = value.get("err") if isinstance(value, dict) else None
        if err:
            self.channel.publish(BundleResult.dropped(bundle_id, f"transaction error: {err}"))
        else:
            self.channel.publish(BundleResult.accepted(bundle_id, slot=slot))
        return True

    async def _subscribe(self, bundle_id: str, signature: str) -> None:
        try:
            async with websockets.connect(
                self.ws_url,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=10,
            ) as ws:
                await ws.send(json.dumps({
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "signatureSubscribe",
                    "params": [signature, {"commitment": "confirmed"}],
                }))
                async for raw in ws:
                    if self.handle_message(bundle_id, json.loads(raw)):
                        break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Other feeds may still resolve the bundle; the timeout bounds the wait.
            self.logger.warning(f"Signature feed for bundle {bundle_id} failed: {e}")
        finally:
            if self._tasks.get(bundle_id) is asyncio.current_task():
                del self._tasks[bundle_id]
