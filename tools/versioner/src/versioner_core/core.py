from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_catalog import *  # noqa: F401,F403
from ._core_parser import *  # noqa: F401,F403
from ._core_database import *  # noqa: F401,F403
from ._core_orchestration import *  # noqa: F401,F403
from ._core_sanity import *  # noqa: F401,F403
from ._core_symbols import *  # noqa: F401,F403
from ._core_validate import *  # noqa: F401,F403
from ._core_report import *  # noqa: F401,F403
