"""
Service Context
===============

Process-wide state owned by the listener and handed to every session.
"""

import asyncio
import uuid
from dataclasses import dataclass, field

from shared.config import Settings
from shared.zk.prover import InsuranceProver
from shared.zk.runner import StageRunner


@dataclass
class ServiceContext:
    """
    Everything a session needs from the running service.

    The limiter bounds how many sessions (and therefore how many concurrent
    toolchain runs) are active at once.
    """

    settings: Settings
    prover: InsuranceProver
    limiter: asyncio.Semaphore = field(init=False)
    active_sessions: int = 0
    total_sessions: int = 0

    def __post_init__(self) -> None:
        self.limiter = asyncio.Semaphore(self.settings.server.max_sessions)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        runner: StageRunner | None = None,
    ) -> "ServiceContext":
        return cls(settings=settings, prover=InsuranceProver(settings.prover, runner=runner))

    @property
    def at_capacity(self) -> bool:
        return self.limiter.locked()

    @staticmethod
    def new_session_id() -> str:
        return uuid.uuid4().hex
