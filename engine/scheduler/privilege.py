import ctypes
import os


def is_elevated() -> bool:
    """
    True when the current process runs with administrator/root rights.
    """

    if os.name == "nt":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False

    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    return geteuid() == 0
