"""Process-group signalling and process-tree reaping helpers."""

import asyncio
import os
from typing import List

import psutil

from .log import get_logger

logger = get_logger(__name__)


def get_child_processes(parent_pid: int) -> List[psutil.Process]:
    """Get all live descendants of a process.

    Returns an empty list when the parent is gone or inaccessible.
    """
    try:
        children = psutil.Process(parent_pid).children(recursive=True)
        logger.debug(
            "Found %s child processes for PID %s: %s",
            len(children),
            parent_pid,
            [child.pid for child in children],
        )
        return children
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
        logger.debug("Could not get children for PID %s: %s", parent_pid, e)
    except (psutil.Error, OSError) as e:
        logger.warning("Error getting child processes for %s: %s", parent_pid, e)
    return []


def signal_process_group(process: asyncio.subprocess.Process, sig: int) -> None:
    """Send ``sig`` to the process group led by ``process``.

    Falls back to signalling the process alone when the group is not
    reachable (e.g. on Windows or if the group already vanished).
    """
    try:
        if os.name != "nt":
            os.killpg(process.pid, sig)
            return
    except (OSError, ProcessLookupError) as e:
        logger.debug("Could not signal process group %s: %s", process.pid, e)

    try:
        process.send_signal(sig)
    except (OSError, ProcessLookupError):
        # Already gone
        pass


async def reap_processes(processes: List[psutil.Process], timeout: float) -> None:
    """Wait for leftover processes to exit, killing the ones that do not."""
    if not processes:
        return

    _, alive = await asyncio.to_thread(psutil.wait_procs, processes, timeout)
    if not alive:
        return

    logger.warning(
        "Killing %s leftover processes: %s", len(alive), [p.pid for p in alive]
    )
    for proc in alive:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    _, still_alive = await asyncio.to_thread(psutil.wait_procs, alive, timeout)
    for proc in still_alive:
        logger.error("Process %s did not die even after SIGKILL", proc.pid)
