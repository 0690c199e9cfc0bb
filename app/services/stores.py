"""Narrow read/write interfaces over the database used by the billing services.

Services depend on these protocols rather than on a Session so the pure parts
can be exercised with in-memory fakes.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.machine import Machine
from app.models.rate import Rate
from app.models.report import Report
from app.models.work_record import WorkRecord
from app.models.worker import Worker
from app.services.activity_classifier import WorkRecordView


class RateStore(Protocol):
    def find_effective(self, activity: str, at: datetime) -> Optional[Rate]: ...

    def find_open(self, activity: str) -> Optional[Rate]: ...

    def find_original(self, activity: str) -> Optional[Rate]: ...

    def history(self, activity: str) -> List[Rate]: ...

    def add(self, rate: Rate) -> None: ...

    def close(self, rate: Rate, at: datetime) -> None: ...


class WorkRecordStore(Protocol):
    def records_for_work_order(self, work_order_id: int) -> List[WorkRecordView]: ...


class SqlRateStore:
    def __init__(self, db: Session):
        self.db = db

    def find_effective(self, activity: str, at: datetime) -> Optional[Rate]:
        return (
            self.db.query(Rate)
            .filter(
                Rate.activity == str(activity),
                Rate.effective_from <= at,
                or_(Rate.effective_to.is_(None), Rate.effective_to > at),
            )
            .order_by(Rate.effective_from.desc(), Rate.id.desc())
            .first()
        )

    def find_open(self, activity: str) -> Optional[Rate]:
        return (
            self.db.query(Rate)
            .filter(Rate.activity == str(activity), Rate.effective_to.is_(None))
            .order_by(Rate.effective_from.desc(), Rate.id.desc())
            .first()
        )

    def find_original(self, activity: str) -> Optional[Rate]:
        return (
            self.db.query(Rate)
            .filter(Rate.activity == str(activity))
            .order_by(Rate.effective_from.asc(), Rate.id.asc())
            .first()
        )

    def history(self, activity: str) -> List[Rate]:
        return (
            self.db.query(Rate)
            .filter(Rate.activity == str(activity))
            .order_by(Rate.effective_from.asc(), Rate.id.asc())
            .all()
        )

    def add(self, rate: Rate) -> None:
        self.db.add(rate)
        self.db.flush()

    def close(self, rate: Rate, at: datetime) -> None:
        # Flushed before the next version is added so the one-open-row index holds.
        rate.effective_to = at
        self.db.flush()


class SqlWorkRecordStore:
    def __init__(self, db: Session):
        self.db = db

    def records_for_work_order(self, work_order_id: int) -> List[WorkRecordView]:
        rows = (
            self.db.query(
                WorkRecord.id,
                WorkRecord.start_time,
                WorkRecord.end_time,
                WorkRecord.work_description,
                Worker.name.label("worker_name"),
                Machine.name.label("machine_name"),
            )
            .join(Report, Report.id == WorkRecord.report_id)
            .join(Worker, Worker.id == Report.worker_id)
            .outerjoin(Machine, Machine.id == WorkRecord.machine_id)
            .filter(WorkRecord.work_order_id == int(work_order_id))
            .order_by(WorkRecord.start_time.asc(), WorkRecord.id.asc())
            .all()
        )

        return [
            WorkRecordView(
                id=int(r.id),
                start_time=r.start_time,
                end_time=r.end_time,
                worker_name=r.worker_name or "",
                machine_name=r.machine_name,
                work_description=r.work_description,
            )
            for r in rows
        ]
