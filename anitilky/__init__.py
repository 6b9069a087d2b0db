from anitilky.config.settings import get_config
from anitilky.utils.logging import Logger, get_logger
from anitilky.utils.terminal import supports_utf8
from anitilky.utils.version import (
    get_docker_status,
    get_git_hash,
    get_pyproject_version,
)

__author__ = "AniTilky Team"
__license__ = "MIT"
__version__ = get_pyproject_version()
__git_hash__ = get_git_hash()


if supports_utf8():
    ANITILKY_HEADER = f"""
╔═══════════════════════════════════════════════════════════════════════════════╗
║                              A N I T I L K Y                                  ║
╠═══════════════════════════════════════════════════════════════════════════════╣
║                                                                               ║
║  Version: {__version__:<68}║
║  Git Hash: {__git_hash__:<67}║
║  Docker: {"Yes" if get_docker_status() else "No":<69}║
║  License: {__license__:<68}║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
    """.strip()
else:
    ANITILKY_HEADER = f"""
+-------------------------------------------------------------------------------+
|                              A N I T I L K Y                                  |
+-------------------------------------------------------------------------------+
|                                                                               |
|  Version: {__version__:<68}|
|  Git Hash: {__git_hash__:<67}|
|  Docker: {"Yes" if get_docker_status() else "No":<69}|
|  License: {__license__:<68}|
|                                                                               |
+-------------------------------------------------------------------------------+
    """.strip()

config = get_config()

log: Logger = get_logger()
