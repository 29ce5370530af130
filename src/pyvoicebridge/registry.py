"""Process-wide registry of configured accounts."""

from __future__ import annotations

import logging

from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.directory import DeviceDirectory
from pyvoicebridge.exceptions import BridgeConfigError
from pyvoicebridge.session import AccountSession, RegisteredHandler, RuntimeFactory

_logger = logging.getLogger(__name__)


class AccountRegistry:
    """Account sessions by account id, plus the shared device directory.

    Handlers receive the registry and look their account up by id, so a
    handler can be constructed before or after its account is configured.
    """

    def __init__(
        self,
        *,
        directory: DeviceDirectory | None = None,
        runtime_factory: RuntimeFactory | None = None,
    ) -> None:
        self._sessions: dict[str, AccountSession] = {}
        self._runtime_factory = runtime_factory
        self.directory = directory if directory is not None else DeviceDirectory()

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def account_ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, account_id: str) -> AccountSession:
        try:
            return self._sessions[account_id]
        except KeyError:
            raise BridgeConfigError(f"account {account_id!r} is not configured") from None

    async def add_account(self, config: BridgeConfig, *, refresh_devices: bool = True) -> AccountSession:
        """Configure an account and, optionally, look up its devices.

        An existing session for the same account id is closed and replaced;
        its registered handlers move to the new session, which reconnects.
        """
        config.validate()
        account_id = config.resolved_account_id
        previous = self._sessions.get(account_id)
        handlers: list[RegisteredHandler] = []
        if previous is not None:
            _logger.info("Replacing configuration of account %s", account_id)
            handlers = previous.handlers
            await previous.close()
        session = AccountSession(config, runtime_factory=self._runtime_factory)
        self._sessions[account_id] = session
        for handler in handlers:
            session.register(handler)
        if refresh_devices:
            await self.refresh_devices(account_id)
        return session

    async def refresh_devices(self, account_id: str) -> None:
        config = self.get(account_id).config
        await self.directory.refresh(config.webapi_url, config.username, config.password, account_id)

    async def remove_account(self, account_id: str) -> None:
        session = self._sessions.pop(account_id, None)
        if session is not None:
            await session.close()

    async def close(self) -> None:
        for account_id in list(self._sessions):
            await self.remove_account(account_id)
        await self.directory.close()
