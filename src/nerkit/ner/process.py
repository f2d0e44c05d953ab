"""NER pipeline stage: reads JSONL rows, runs entity extraction, writes rows with entities."""
from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .config import TokenClassificationConfig
from .extractor import EntityExtractor

log = logging.getLogger(__name__)

DEFAULT_PATTERN = "text_corpus.jsonl"


def process_file(input_path: Path, output_path: Path, extractor: EntityExtractor) -> dict:
    """Run NER over one JSONL file, one row per line with a `text` field.

    Returns: {"input": str, "output": str, "total": int, "with_entities": int}
    """
    rows = []
    with open(input_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                rows.append(json.loads(line))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    if not rows:
        log.warning("No rows in %s", input_path)
        output_path.write_text("", encoding="utf-8")
        return {"input": str(input_path), "output": str(output_path),
                "total": 0, "with_entities": 0}

    texts = [r.get("text", "") or "" for r in rows]
    all_entities = extractor.predict_batch(texts)

    with_entities = 0
    with open(output_path, "w", encoding="utf-8") as out:
        for row, entities in zip(rows, all_entities):
            row["entities"] = [e.model_dump() for e in entities]
            row["entity_labels"] = sorted(set(e.label for e in entities))
            if entities:
                with_entities += 1
            out.write(json.dumps(row, ensure_ascii=False) + "\n")

    return {
        "input": str(input_path),
        "output": str(output_path),
        "total": len(rows),
        "with_entities": with_entities,
    }


def process_tree(
    input_dir: str | Path,
    output_dir: str | Path,
    config: Optional[TokenClassificationConfig] = None,
    pattern: str = DEFAULT_PATTERN,
) -> list[dict]:
    """Walk input_dir for files matching `pattern` and run NER on each.

    Outputs mirror the input layout under output_dir. Files whose output is
    newer than the input are skipped.
    """
    input_dir = Path(input_dir)
    output_dir = Path(output_dir)

    files = sorted(input_dir.rglob(pattern))
    if not files:
        log.warning("No %s files found under %s", pattern, input_dir)
        return []

    log.info("Found %d files to process", len(files))

    tasks = []
    for fp in files:
        rel = fp.relative_to(input_dir)
        out_fp = output_dir / rel
        if out_fp.exists() and out_fp.stat().st_mtime > fp.stat().st_mtime:
            log.debug("Skipping %s (up to date)", rel)
            continue
        tasks.append((fp, out_fp))

    if not tasks:
        log.info("All files up to date, nothing to process")
        return []

    log.info("Processing %d files", len(tasks))

    results = []
    with EntityExtractor(config) as extractor:
        for fp, out_fp in tqdm(tasks, desc="NER"):
            results.append(process_file(fp, out_fp, extractor))

    total_rows = sum(r["total"] for r in results)
    total_with = sum(r["with_entities"] for r in results)
    log.info(
        "NER complete: %d files, %d rows, %d with entities (%.1f%%)",
        len(results), total_rows, total_with,
        100.0 * total_with / max(total_rows, 1),
    )
    return results
