"""Install the running executable into a bin directory.

The unprivileged remove/copy is always tried first. Only a PermissionError on
either step falls back to a single ``sudo sh -c "rm -f dst && cp src dst"``.
"""
import logging
import os
import shlex
import shutil
import subprocess
import sys
from typing import Callable, Optional

from .entity import InstallPlan
from .errors import InstallError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

DEFAULT_INSTALL_PATH = "/usr/local/bin/"
ENTRY_POINT = "hfdownloader"


def _is_runnable(path: Optional[str]) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_executable(argv0: Optional[str] = None, *, frozen: Optional[bool] = None,
                       executable: Optional[str] = None,
                       which: Optional[Callable[[str], Optional[str]]] = None) -> str:
    """Path of the program being run: the frozen binary or the launcher script.

    Under ``python -m hfdownloader`` argv[0] is the package's __main__.py, which
    cannot run on its own; the installed console script is used instead.
    """
    which = which or shutil.which
    if frozen is None:
        frozen = getattr(sys, "frozen", False)
    if frozen:
        return os.path.realpath(executable or sys.executable)

    if argv0 is None:
        argv0 = sys.argv[0] if sys.argv else ""
    if argv0 and os.path.basename(argv0) == argv0:
        argv0 = which(argv0) or argv0

    if argv0 and os.path.basename(argv0) != "__main__.py" and _is_runnable(argv0):
        return os.path.realpath(argv0)

    script = which(ENTRY_POINT)
    if not _is_runnable(script):
        raise InstallError(f"cannot locate the {ENTRY_POINT} executable, install the package with pip first")
    return os.path.realpath(script)


def plan_install(install_path: str, executable: Optional[str] = None,
                 platform: str = sys.platform) -> InstallPlan:
    if platform.startswith("win"):
        raise UnsupportedPlatformError("the install command is not supported on Windows")
    src = executable or resolve_executable()
    dst = os.path.join(install_path, os.path.basename(src))
    return InstallPlan(source=src, destination=dst, steps=["locate"])


def _remove_existing(plan: InstallPlan) -> None:
    if not os.path.lexists(plan.destination):
        return
    plan.steps.append("remove")
    try:
        os.remove(plan.destination)
    except PermissionError:
        plan.needs_elevation = True
    except OSError as e:
        raise InstallError(f"failed to remove {plan.destination}: {e}") from e


def _copy(plan: InstallPlan) -> None:
    plan.steps.append("copy")
    try:
        src = open(plan.source, "rb")
    except OSError as e:
        raise InstallError(f"failed to open {plan.source}: {e}") from e
    with src:
        try:
            fd = os.open(plan.destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o755)
            with os.fdopen(fd, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except PermissionError:
            plan.needs_elevation = True
        except OSError as e:
            raise InstallError(f"failed to copy {plan.source} to {plan.destination}: {e}") from e


def elevated_command(plan: InstallPlan):
    src, dst = shlex.quote(plan.source), shlex.quote(plan.destination)
    return ["sudo", "sh", "-c", f"rm -f {dst} && cp {src} {dst}"]


def _elevate(plan: InstallPlan, run: Callable[..., subprocess.CompletedProcess],
             out: Callable[[str], None]) -> None:
    plan.steps.append("elevate")
    out(f"Require sudo privileges to complete installation at: {os.path.dirname(plan.destination)}")
    try:
        run(elevated_command(plan), check=True)
    except subprocess.CalledProcessError as e:
        raise InstallError(f"elevated install failed with exit status {e.returncode}") from e
    except FileNotFoundError as e:
        raise InstallError("sudo not found, cannot elevate privileges") from e


def install_binary(install_path: str = DEFAULT_INSTALL_PATH, *,
                   executable: Optional[str] = None,
                   platform: str = sys.platform,
                   run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                   out: Callable[[str], None] = print) -> InstallPlan:
    plan = plan_install(install_path, executable, platform)
    _remove_existing(plan)
    _copy(plan)
    if plan.needs_elevation:
        _elevate(plan, run, out)
    plan.steps.append("done")
    logger.info("The binary has been successfully installed to %s", plan.destination)
    return plan
