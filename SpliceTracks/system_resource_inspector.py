"""
┌──────────────────────────────────────────────────────────────────────────────┐
│ System Resource Inspector - RAM / CPU / Disk Availability Detection          │
├──────────────────────────────────────────────────────────────────────────────┤
│ Author: SpliceTracks Team | License: MIT | Version: 2025.1                   │
└──────────────────────────────────────────────────────────────────────────────┘

DESCRIPTION:
    Detects RAM and CPU availability and determines safe operating
    limits.  Used by ParallelJobExecutor to size the local worker pool when
    jobs are run on one machine instead of a cluster.

USAGE::

    inspector = SystemResourceInspector()
    budget  = inspector.get_memory_budget()          # 60% of available RAM
    workers = inspector.suggest_workers(4_000_000_000)
"""

from __future__ import annotations

import logging
import os

import psutil

logger = logging.getLogger(__name__)

# Fraction of available RAM exposed as the safe memory budget
_MEMORY_BUDGET_FRACTION: float = 0.60


class SystemResourceInspector:
    """
    Inspect system resources and compute safe operating limits.

    All values are in bytes unless otherwise stated.
    """

    def get_available_ram(self) -> int:
        """Return currently available (free + reclaimable) RAM in bytes."""
        return psutil.virtual_memory().available

    def get_cpu_count(self) -> int:
        """
        Return the number of logical CPU cores available.

        Uses ``os.cpu_count()``; falls back to 1.
        """
        count = os.cpu_count()
        if count is None or count < 1:
            logger.warning("os.cpu_count() returned None – defaulting to 1")
            return 1
        return count

    def get_memory_budget(self) -> int:
        """
        Return the safe usable RAM budget in bytes.

        Defined as ``_MEMORY_BUDGET_FRACTION`` (60 %) of currently available
        RAM so that scoring workers do not starve other processes.
        """
        budget = int(self.get_available_ram() * _MEMORY_BUDGET_FRACTION)
        return max(budget, 1)

    def suggest_workers(self, per_worker_ram: int) -> int:
        """
        Number of scoring workers this machine can run side by side.

        ``min(cpu_count, memory_budget // per_worker_ram)``, at least 1.
        """
        by_ram = self.get_memory_budget() // max(per_worker_ram, 1)
        workers = max(1, min(self.get_cpu_count(), int(by_ram)))
        logger.info(
            f"SystemResourceInspector: cpus={self.get_cpu_count()}, "
            f"ram_budget={self.get_memory_budget() / 1e9:.2f} GB → workers={workers}"
        )
        return workers
