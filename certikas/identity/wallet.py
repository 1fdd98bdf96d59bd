"""Wallet session with explicit connect/disconnect lifecycle.

A ``WalletSession`` wraps an injected ``WalletProvider`` (browser bridge,
hardware signer, test double) and publishes lifecycle events to subscribers
instead of relying on global wallet state. The connected account address is
the claimant id presented to the certification engine.
"""

import abc
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

WALLET_EVENTS = ("connect", "disconnect", "account_changed", "network_changed", "error")

Handler = Callable[[Any], None]


class WalletNotConnected(RuntimeError):
    """Operation requires a connected wallet."""


class WalletProvider(abc.ABC):
    """Signing backend behind a wallet session."""

    @abc.abstractmethod
    async def request_accounts(self) -> list[str]:
        """Ask the user/backend for account access."""

    @abc.abstractmethod
    async def get_network(self) -> str:
        """Return the network the provider is attached to."""

    @abc.abstractmethod
    async def sign_message(self, address: str, message: str) -> str:
        """Sign a message with the account's key."""


class WalletSession:
    """Connection state and event subscriptions for one wallet provider."""

    def __init__(self, provider: WalletProvider):
        """Initialize disconnected session."""
        self.provider = provider
        self.address: Optional[str] = None
        self.network: Optional[str] = None
        self._handlers: dict[str, list[Handler]] = {event: [] for event in WALLET_EVENTS}

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe to an event; returns an unsubscribe callable."""
        if event not in self._handlers:
            raise ValueError(f"Unknown wallet event: {event}")
        self._handlers[event].append(handler)

        def unsubscribe():
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def _emit(self, event: str, data: Any = None) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Wallet {event} handler failed: {e}", exc_info=True)

    async def connect(self) -> str:
        """Connect to the provider and return the active account address."""
        try:
            accounts = await self.provider.request_accounts()
            if not accounts:
                raise WalletNotConnected("Wallet returned no accounts")
            network = await self.provider.get_network()
        except Exception as e:
            self._emit("error", e)
            raise

        self.address = accounts[0]
        self.network = network
        logger.info(f"Wallet connected on {network}")
        self._emit("connect", {"address": self.address, "network": network})
        return self.address

    def disconnect(self) -> None:
        """Drop the connection; no-op when already disconnected."""
        if not self.is_connected:
            return
        self.address = None
        self.network = None
        self._emit("disconnect")

    def handle_accounts_changed(self, accounts: list[str]) -> None:
        """Provider callback: the user switched or removed accounts."""
        if not accounts:
            self.disconnect()
            return
        if accounts[0] != self.address:
            self.address = accounts[0]
            self._emit("account_changed", self.address)

    def handle_network_changed(self, network: str) -> None:
        """Provider callback: the wallet moved to another network."""
        if network != self.network:
            self.network = network
            self._emit("network_changed", network)

    async def sign_message(self, message: str) -> str:
        """Sign with the connected account."""
        if not self.is_connected:
            raise WalletNotConnected("No wallet connected. Please connect your wallet first.")
        try:
            return await self.provider.sign_message(self.address, message)
        except Exception as e:
            self._emit("error", e)
            raise

    def status(self) -> dict:
        return {"connected": self.is_connected, "address": self.address, "network": self.network}
