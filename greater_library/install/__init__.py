"""Installing registry components into a project.

Public Interface:
    - Installer: Resolve, fetch, verify, transform and write components
    - InstalledStateStore: Records of installed components per project
    - compute_diff: Diff installed files against registry content
    - run_doctor: Project health checks
"""

from .diff import DiffResult
from .diff import compute_diff
from .diff import format_diff_stats
from .doctor import DoctorCheck
from .doctor import DoctorReport
from .doctor import run_doctor
from .installer import Installer
from .models import ComponentInstallResult
from .models import FilePlan
from .models import InstallReport
from .models import InstallState
from .models import InstalledComponent
from .models import InstalledFile
from .models import UpdateInfo
from .state_store import InstalledStateStore

__all__ = [
    "ComponentInstallResult",
    "DiffResult",
    "DoctorCheck",
    "DoctorReport",
    "FilePlan",
    "InstallReport",
    "InstallState",
    "InstalledComponent",
    "InstalledFile",
    "InstalledStateStore",
    "Installer",
    "UpdateInfo",
    "compute_diff",
    "format_diff_stats",
    "run_doctor",
]
