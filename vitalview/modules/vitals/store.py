from typing import List, Protocol

from vitalview.modules.vitals.models import VitalRecord
from vitalview.modules.vitals.schemas import VitalsSnapshot, ensure_utc


class VitalStore(Protocol):
    """Persistence collaborator: the monitoring core only needs insert and a recent-history query."""

    async def insert(self, snapshot: VitalsSnapshot) -> str: ...

    async def query(self, patient_id: int, limit: int = 100) -> List[VitalsSnapshot]: ...


class MongoVitalStore:
    """Beanie-backed vitals collection."""

    async def insert(self, snapshot: VitalsSnapshot) -> str:
        record = VitalRecord(
            patient_id=snapshot.patient_id,
            hr=snapshot.hr,
            pulse=snapshot.pulse,
            spo2=snapshot.spo2,
            abp=snapshot.abp,
            pap=snapshot.pap,
            etco2=snapshot.etco2,
            awrr=snapshot.awrr,
            source=snapshot.source,
            created_at=snapshot.timestamp,
        )
        await record.insert()
        return str(record.id)

    async def query(self, patient_id: int, limit: int = 100) -> List[VitalsSnapshot]:
        """Return the newest ``limit`` records for a patient, newest first."""
        records: List[VitalRecord] = (
            await VitalRecord.find(VitalRecord.patient_id == patient_id)
            .sort("-created_at")
            .limit(limit)
            .to_list()
        )
        return [self._to_snapshot(record) for record in records]

    @staticmethod
    def _to_snapshot(record: VitalRecord) -> VitalsSnapshot:
        # Mongo hands back naive datetimes
        return VitalsSnapshot(
            hr=record.hr,
            pulse=record.pulse,
            spo2=record.spo2,
            abp=record.abp,
            pap=record.pap,
            etco2=record.etco2,
            awrr=record.awrr,
            patient_id=record.patient_id,
            timestamp=ensure_utc(record.created_at),
            source=record.source,
        )
