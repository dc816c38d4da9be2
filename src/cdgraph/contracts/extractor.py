"""Contract extraction orchestration - picks a scanner per file and runs a snapshot."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import PurePosixPath

from cdgraph.changes.models import ChangeSet
from cdgraph.config import ExtractorConfig
from cdgraph.contracts.models import Confidence, ContractFacts, Snapshot
from cdgraph.diagnostics import EngineWarning, WarningKind

logger = logging.getLogger("cdgraph.contracts")

SCRIPT_LANGUAGES: dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
}


def detect_language(path: str, config: ExtractorConfig | None = None) -> str | None:
    """Detect the scanner language from a file extension."""
    config = config or ExtractorConfig()
    ext = PurePosixPath(path).suffix.lower()
    if ext in config.python_extensions:
        return "python"
    if ext in config.script_extensions:
        return SCRIPT_LANGUAGES.get(ext, "javascript")
    return None


def extract_file(
    path: str,
    content: str | None,
    snapshot: Snapshot,
    config: ExtractorConfig | None = None,
) -> ContractFacts:
    """Extract one file's contract facts in one snapshot.

    A file with no content in this snapshot yields empty facts, never an
    error. Unsupported file types are kept with a warning.
    """
    config = config or ExtractorConfig()
    if content is None:
        return ContractFacts.absent(path, snapshot)

    language = detect_language(path, config)
    if language == "python":
        from cdgraph.contracts.python_extractor import extract_python_facts

        return extract_python_facts(path, content, snapshot, config.store_names)
    if language is not None:
        from cdgraph.contracts.script_extractor import extract_script_facts, is_available

        if is_available(language):
            return extract_script_facts(path, content, snapshot, language, config.store_names)
        logger.warning(f"tree-sitter grammar for {language} is not installed; skipping {path}")
        message = f"No tree-sitter grammar installed for {language}"
    else:
        message = f"No contract scanner for '{PurePosixPath(path).suffix or path}' files"

    warning = EngineWarning(
        kind=WarningKind.UNSUPPORTED_FILE,
        message=message,
        path=path,
        snapshot=snapshot.value,
    )
    return ContractFacts.create(path, snapshot, None, warnings=[warning])


def _snapshot_inputs(change_set: ChangeSet, snapshot: Snapshot) -> list[tuple[str, str | None]]:
    inputs = []
    for change in change_set.changes:
        if snapshot == Snapshot.BEFORE:
            inputs.append((change.before_path, change.before_content))
        else:
            inputs.append((change.path, change.after_content))
    return inputs


def extract_snapshot(
    change_set: ChangeSet,
    snapshot: Snapshot,
    config: ExtractorConfig | None = None,
) -> tuple[ContractFacts, ...]:
    """Extract facts for every file of one snapshot.

    Files are scanned concurrently on a pool bounded by
    ``config.max_workers``; results are sorted by path so the graph built from
    them does not depend on completion order.
    """
    config = config or ExtractorConfig()
    inputs = _snapshot_inputs(change_set, snapshot)

    with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
        futures = [
            pool.submit(extract_file, path, content, snapshot, config)
            for path, content in inputs
        ]
        results = [f.result() for f in futures]

    results.sort(key=lambda facts: facts.path)
    low = sum(1 for facts in results if facts.present and facts.confidence == Confidence.LOW)
    logger.info(
        f"Extracted {snapshot.value} contracts for {len(results)} file(s)"
        + (f", {low} with low confidence" if low else "")
    )
    return tuple(results)
