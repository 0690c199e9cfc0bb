from typing import List, Optional

from app.models.rate import Rate


class InMemoryRateStore:
    """RateStore over a plain list; ids are assigned in insertion order."""

    def __init__(self, rows: Optional[List[Rate]] = None):
        self.rows: List[Rate] = []
        for row in rows or []:
            self.add(row)

    def _for(self, activity: str) -> List[Rate]:
        return [r for r in self.rows if r.activity == activity]

    def find_effective(self, activity, at):
        matches = [
            r for r in self._for(activity)
            if r.effective_from <= at and (r.effective_to is None or r.effective_to > at)
        ]
        matches.sort(key=lambda r: (r.effective_from, r.id), reverse=True)
        return matches[0] if matches else None

    def find_open(self, activity):
        matches = [r for r in self._for(activity) if r.effective_to is None]
        return matches[0] if matches else None

    def find_original(self, activity):
        rows = self.history(activity)
        return rows[0] if rows else None

    def history(self, activity):
        return sorted(self._for(activity), key=lambda r: (r.effective_from, r.id))

    def add(self, rate):
        rate.id = len(self.rows) + 1
        self.rows.append(rate)

    def close(self, rate, at):
        rate.effective_to = at


class InMemoryWorkRecordStore:
    def __init__(self, records_by_order=None):
        self.records_by_order = dict(records_by_order or {})

    def records_for_work_order(self, work_order_id):
        return list(self.records_by_order.get(work_order_id, []))
