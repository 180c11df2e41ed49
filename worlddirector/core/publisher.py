"""
Publisher - persists approved proposals as permanent content records, one JSON file per item.
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from util.logging import audit_event, logger
from .config import GENERATED_DIR
from .proposals import ContentKind, Proposal, ProposalStatus, WorkflowStateError


def kind_directory(root: Path, kind: ContentKind) -> Path:
    """Published records are grouped by kind: <root>/<kind>s/."""
    return Path(root) / f"{ContentKind(kind).value}s"


class Publisher:
    """Writes approved proposals to the generated-content tree."""

    def __init__(self, generated_dir: str = GENERATED_DIR):
        self.root = Path(generated_dir)

    def publish(self, proposal: Proposal) -> Path:
        """Write the payload plus generation metadata and flip the proposal to published.

        Raises WorkflowStateError if the proposal is not approved; nothing is written in that case.
        """
        if proposal.status != ProposalStatus.APPROVED:
            raise WorkflowStateError(
                f"Proposal {proposal.id} must be approved before publishing (status: {proposal.status.value})"
            )

        target_dir = kind_directory(self.root, proposal.kind)
        target = target_dir / f"{proposal.payload.id}.json"

        record = proposal.payload.model_dump(mode="json")
        record["_metadata"] = {
            "proposal_id": proposal.id,
            "generated_at": proposal.created_at,
            "published_at": int(time.time() * 1000),
            "seed": proposal.seed,
            "flavor": proposal.flavor.model_dump() if proposal.flavor else None,
        }

        tmp_path = target.with_suffix(".tmp")
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp_path, target)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            logger.log_publish(proposal.id, proposal.kind.value, str(target), status="failed")
            raise

        proposal.mark_published()
        logger.log_publish(proposal.id, proposal.kind.value, str(target))
        audit_event("proposal.published", {"proposal_id": proposal.id, "kind": proposal.kind.value},
                    {"location": str(target)})
        return target

    def list_published(self, kind: Optional[ContentKind] = None) -> List[Dict[str, Any]]:
        """Read back published records, optionally for one kind."""
        kinds = [ContentKind(kind)] if kind else list(ContentKind)
        records = []
        for k in kinds:
            directory = kind_directory(self.root, k)
            if not directory.exists():
                continue
            for path in sorted(directory.glob("*.json")):
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        records.append(json.load(f))
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Skipping unreadable published record {path}: {e}")
        return records
