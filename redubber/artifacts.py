"""Output directory management and JSON artifacts."""

import json
import os
import re
import shutil

from redubber.constants import OUTPUT_DIR

PROJECT_SUBDIRS = ["work", "final"]


def slug_from_path(cue_path: str) -> str:
    """Convert a cue filename to an output directory slug.

    "Episode 01.en.vtt" → "episode_01_en"
    "/path/to/Interview (cut).srt" → "interview_cut"
    """
    basename = os.path.splitext(os.path.basename(cue_path))[0]
    # Replace non-alphanumeric with underscore, collapse multiples, strip edges
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()
    return slug or "untitled"


def init_output_dir(cue_path: str, output_base: str = OUTPUT_DIR) -> str:
    """Create output/<slug>/ and its subdirectories.

    Returns the project directory path.
    """
    project_dir = os.path.join(output_base, slug_from_path(cue_path))
    for subdir in PROJECT_SUBDIRS:
        os.makedirs(os.path.join(project_dir, subdir), exist_ok=True)
    return project_dir


def write_artifact(project_dir: str, filename: str, data: dict) -> str:
    """Write JSON artifact to project_dir/filename.

    Returns path to the written file.
    """
    os.makedirs(project_dir, exist_ok=True)
    path = os.path.join(project_dir, filename)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


def load_artifact(project_dir: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(project_dir, filename)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        return json.load(f)


def iteration_dir(work_dir: str, iteration: int) -> str:
    """Create and return <work_dir>/iter_<n>/ for one calibration iteration."""
    path = os.path.join(work_dir, f"iter_{iteration}")
    os.makedirs(path, exist_ok=True)
    return path


def clear_work_dir(project_dir: str) -> str:
    """Delete everything a previous run left under work/.

    Returns the (now empty) work directory.
    """
    path = os.path.join(project_dir, "work")
    if os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)
    return path


def discard_dir(path: str) -> None:
    """Remove an in-flight iteration's artifacts."""
    if os.path.exists(path):
        shutil.rmtree(path)


def list_projects(output_base: str = OUTPUT_DIR) -> list[str]:
    """Return project slugs that have a final report."""
    if not os.path.isdir(output_base):
        return []
    return sorted(
        name for name in os.listdir(output_base)
        if os.path.exists(os.path.join(output_base, name, "final", "report.json"))
    )
