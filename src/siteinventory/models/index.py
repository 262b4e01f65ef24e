from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class BulkResult:
    """Outcome of one bulk submission, split by per-document result.

    ``updated`` holds ids of documents that already existed in the index;
    for a freshly created index that means a duplicate id was submitted.
    """

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.updated and not self.errors
