"""Version and runtime environment helpers."""

from pathlib import Path

import tomlkit

__all__ = ["get_docker_status", "get_git_hash", "get_pyproject_version"]

ROOT_DIR = Path(__file__).resolve().parent.parent.parent


def get_pyproject_version() -> str:
    """Get AniTilky's version from the pyproject.toml file.

    Returns:
        str: AniTilky's version, or "unknown" when the file is unavailable
    """
    toml_file = ROOT_DIR / "pyproject.toml"
    if not toml_file.is_file():
        return "unknown"

    with toml_file.open(encoding="utf-8") as f:
        toml_data = tomlkit.load(f)

    project = toml_data.get("project", {})
    return str(project.get("version", "unknown"))


def get_git_hash() -> str:
    """Get the git commit hash of the checked out repository.

    Returns:
        str: The current commit hash, or "unknown" outside a branch checkout
    """
    git_dir = ROOT_DIR / ".git"
    if not git_dir.is_dir():
        return "unknown"

    try:
        head = (git_dir / "HEAD").read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"

    if not head.startswith("ref: refs/heads/"):
        return "unknown"

    ref_path = git_dir / head.removeprefix("ref: ")
    try:
        return ref_path.read_text(encoding="utf-8").strip()
    except OSError:
        return "unknown"


def get_docker_status() -> bool:
    """Check if AniTilky is running inside a Docker container.

    Returns:
        bool: True if running inside a Docker container, False otherwise
    """
    return Path("/.dockerenv").is_file()
