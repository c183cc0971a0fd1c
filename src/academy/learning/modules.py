"""Module certification status across several curriculum modules."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from academy.errors import AcademyError

logger = structlog.get_logger()


class ModuleStatusSource(ABC):
    @abstractmethod
    async def is_module_completed(self, wallet: str, module_id: str) -> bool:
        ...

    @abstractmethod
    async def is_module_claimed(self, wallet: str, module_id: str) -> bool:
        ...


@dataclass(frozen=True)
class ModuleStatus:
    module_id: str
    completed: bool = False
    claimed: bool = False
    error: AcademyError | None = None


async def _module_status(source: ModuleStatusSource, wallet: str, module_id: str) -> ModuleStatus:
    try:
        completed = await source.is_module_completed(wallet, module_id)
        claimed = await source.is_module_claimed(wallet, module_id)
    except AcademyError as exc:
        logger.warning("module_status_failed", module=module_id, error=exc.message)
        return ModuleStatus(module_id=module_id, error=exc)
    return ModuleStatus(module_id=module_id, completed=completed, claimed=claimed)


async def module_statuses(
    source: ModuleStatusSource,
    wallet: str,
    module_ids: Iterable[str],
) -> dict[str, ModuleStatus]:
    """Query every module concurrently. One module failing does not affect the others."""
    ids = list(dict.fromkeys(module_ids))
    results = await asyncio.gather(*(_module_status(source, wallet.lower(), mid) for mid in ids))
    return {status.module_id: status for status in results}
