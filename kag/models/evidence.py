"""
Evidence references: pointers to the source artifacts behind a signal.

Refs arrive from several connectors in slightly different shapes. They are
normalized into a frozen model so that structural equality (and hashing)
can be used to deduplicate them wherever they are accumulated.
"""

from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

IDENTIFYING_FIELDS = (
    "message_id",
    "linear_issue_id",
    "attio_record_id",
    "doc_url",
    "rag_chunk_id",
)


class EvidenceRef(BaseModel):
    """
    Normalized reference to a message, work item, CRM record, document,
    retrieval chunk or generic table row.

    Attributes:
        message_id: Chat message identifier
        linear_issue_id: Issue-tracker work item identifier
        attio_record_id: CRM record identifier
        doc_url: Document URL
        rag_chunk_id: Retrieval chunk identifier
        source_table: Generic source table name
        source_pk: Primary key within ``source_table``
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    message_id: Optional[str] = None
    linear_issue_id: Optional[str] = None
    attio_record_id: Optional[str] = None
    doc_url: Optional[str] = None
    rag_chunk_id: Optional[str] = None
    source_table: Optional[str] = None
    source_pk: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Optional[str]:
        """Identifiers are stored as stripped strings; blanks become None."""
        if v is None or isinstance(v, (dict, list, tuple, set)):
            return None
        text = str(v).strip()
        return text or None

    @property
    def is_identifiable(self) -> bool:
        if any(getattr(self, name) for name in IDENTIFYING_FIELDS):
            return True
        return bool(self.source_table and self.source_pk)


EvidenceLike = Union[EvidenceRef, dict]


def parse_evidence_ref(item: Any) -> Optional[EvidenceRef]:
    """Normalize a raw ref, returning None when it identifies nothing."""
    if isinstance(item, EvidenceRef):
        ref = item
    elif isinstance(item, dict):
        try:
            ref = EvidenceRef.model_validate(item)
        except ValidationError:
            return None
    else:
        return None
    return ref if ref.is_identifiable else None


def dedupe_evidence_refs(refs: Optional[Iterable[Any]], limit: int = 30) -> list[EvidenceRef]:
    """
    Normalize and deduplicate refs, preserving first-seen order.

    Args:
        refs: Raw refs (dicts or EvidenceRef); None is treated as empty
        limit: Maximum number of refs returned

    Returns:
        Up to ``limit`` distinct identifiable refs
    """
    out: list[EvidenceRef] = []
    if not refs or limit <= 0:
        return out
    seen: set[EvidenceRef] = set()
    for item in refs:
        ref = parse_evidence_ref(item)
        if ref is None or ref in seen:
            continue
        seen.add(ref)
        out.append(ref)
        if len(out) >= limit:
            break
    return out


def merge_evidence(
    existing: Optional[Iterable[Any]],
    incoming: Optional[Iterable[Any]],
    limit: int = 30,
) -> list[EvidenceRef]:
    return dedupe_evidence_refs([*(existing or []), *(incoming or [])], limit)
