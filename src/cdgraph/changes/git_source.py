"""Git change source: raw change records from a local checkout.

This is glue around the engine: it shells out to `git` to list the files
changed between a base ref and HEAD and reads both versions of each file.
The engine itself never touches git.
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path

from cdgraph.config import GitConfig
from cdgraph.exceptions import GitError

logger = logging.getLogger("cdgraph.git")


def _run_git(root: Path, args: list[str], config: GitConfig) -> subprocess.CompletedProcess:
    """Run a git command, retrying timeouts with bounded exponential backoff."""
    last_error: Exception | None = None
    for attempt in range(config.max_attempts):
        try:
            return subprocess.run(
                ["git", *args],
                cwd=root,
                capture_output=True,
                text=True,
                timeout=config.timeout,
            )
        except FileNotFoundError as e:
            raise GitError("git executable not found") from e
        except subprocess.TimeoutExpired as e:
            last_error = e
            delay = config.backoff_seconds * (2 ** attempt)
            logger.warning(
                f"git {' '.join(args[:2])} timed out (attempt {attempt + 1}/"
                f"{config.max_attempts}), retrying in {delay:.1f}s"
            )
            time.sleep(delay)
    raise GitError(f"git {' '.join(args)} failed after {config.max_attempts} attempts") from last_error


def _git_output(root: Path, args: list[str], config: GitConfig) -> str:
    result = _run_git(root, args, config)
    if result.returncode != 0:
        raise GitError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout


def resolve_base(root: Path, base: str, config: GitConfig | None = None) -> str:
    """Return the merge base of `base` and HEAD, or `base` when there is none."""
    config = config or GitConfig()
    result = _run_git(root, ["merge-base", base, "HEAD"], config)
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return base


def parse_name_status(output: str) -> list[dict]:
    """Parse `git diff --name-status` output into partial change records."""
    records = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        status = parts[0].strip()
        if status.startswith("R") and len(parts) >= 3:
            records.append({"status": status, "old_path": parts[1], "path": parts[2]})
        elif status.startswith("C") and len(parts) >= 3:
            # Copies keep the source untouched; the copy is a new file
            records.append({"status": "A", "path": parts[2]})
        elif len(parts) >= 2:
            records.append({"status": status[:1], "path": parts[1]})
    return records


def read_blob(root: Path, ref: str, path: str, config: GitConfig | None = None) -> str:
    """Read a file's content at a given ref."""
    config = config or GitConfig()
    return _git_output(root, ["show", f"{ref}:{path}"], config)


def collect_git_changes(
    root: Path,
    base: str = "main",
    context_paths: list[str] | None = None,
    config: GitConfig | None = None,
) -> list[dict]:
    """Build raw change records for everything changed between `base` and HEAD.

    Args:
        root: Repository root.
        base: Base ref to diff against.
        context_paths: Extra files to include as unchanged context so that
            their contracts with changed files can be grounded.
        config: Retry and timeout settings.

    Returns:
        List of raw records accepted by :func:`cdgraph.changes.ingestor.ingest_changes`.
    """
    config = config or GitConfig()
    root = Path(root).resolve()
    base_rev = resolve_base(root, base, config)

    output = _git_output(root, ["diff", "--name-status", "-M", base_rev, "HEAD"], config)
    records = parse_name_status(output)
    logger.info(f"git reports {len(records)} changed file(s) against {base}")

    for record in records:
        status = record["status"][:1]
        if status in ("M", "R", "D", "T"):
            record["before"] = read_blob(root, base_rev, record.get("old_path") or record["path"], config)
        if status in ("M", "R", "A", "T"):
            record["after"] = read_blob(root, "HEAD", record["path"], config)
        if status == "T":
            record["status"] = "M"

    changed = {r["path"] for r in records}
    for path in context_paths or []:
        if path in changed:
            continue
        content = read_blob(root, "HEAD", path, config)
        records.append({"status": "unchanged", "path": path, "content": content})

    return records
