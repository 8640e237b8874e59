"""Project path helpers based on pathlib."""

from pathlib import Path


def project_root() -> Path:
    """Return repository root directory."""
    return Path(__file__).resolve().parents[2]


def config_dir() -> Path:
    """Return Hydra config directory."""
    return project_root() / "configs"


def plots_dir() -> Path:
    """Return plots directory."""
    return project_root() / "plots"
