from evaluator.models.analysis import AnalysisRecord


class AnalysisStore:
    """finished analyses for the lifetime of the process. each key is written once."""

    def __init__(self):
        self._records: dict[str, AnalysisRecord] = {}

    def save(self, record: AnalysisRecord) -> AnalysisRecord:
        self._records[record.id] = record
        return record

    def get(self, analysis_id: str) -> AnalysisRecord | None:
        return self._records.get(analysis_id)

    def recent(self, limit: int = 10) -> list[AnalysisRecord]:
        if limit <= 0:
            return []
        # dicts keep insertion order
        return list(self._records.values())[-limit:][::-1]

    def clear(self):
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


_store = AnalysisStore()


def get_store() -> AnalysisStore:
    return _store
