import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from sponsormatch.core.logging import request_id_ctx
from sponsormatch.pipeline.models import PipelineOutcome

_log = logging.getLogger("sponsormatch.decision_log")


def _hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DecisionLogger:
    """Append-only JSONL record of decided requests. Question text is stored hashed."""

    def __init__(self, path: str | Path, engine_version: str = "") -> None:
        self.path = Path(path)
        self.engine_version = engine_version
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def build_entry(self, question: str, outcome: PipelineOutcome) -> dict:
        verdict = outcome.verdict
        match = verdict.match.match if verdict.match else None
        cls = outcome.classification

        return {
            "decision_id": request_id_ctx.get("") or None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engine_version": self.engine_version,
            "question_hash": _hash_text(question),
            "category": cls.primary_category.id if cls else None,
            "subcategory": cls.subcategory.id if cls else None,
            "intents": list(cls.possible_intents) if cls else [],
            "advertiser_id": match.advertiser.id if match else None,
            "treatment_area_id": match.treatment_area.id if match else None,
            "raw_score": match.raw_score if match else None,
            "confidence": round(verdict.confidence, 6),
            "degraded": verdict.match.degraded if verdict.match else None,
            "tier": verdict.tier.value,
            "show_ad": verdict.show_ad,
            "stage": outcome.stage.value,
            "elapsed_ms": round(outcome.elapsed_ms, 2),
        }

    def log(self, question: str, outcome: PipelineOutcome) -> dict:
        entry = self.build_entry(question, outcome)
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as exc:
            _log.warning("decision log write failed (non-fatal): %s", exc)
        return entry
