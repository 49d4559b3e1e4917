import json
from pathlib import Path
from typing import List, Optional

from agora.core.market.events import EventBus, MarketEvent
from agora.core.storage.sqlite_adapter import SQLiteAdapter
from agora.utils.logger import get_logger

logger = get_logger("storage.journal")


class EventJournal:
    """
    Persists published marketplace events for indexers.

    Attach it to an EventBus; only events of committed operations reach
    the bus subscribers, so the journal never records rolled-back effects.

    Event sequence numbers restart with every engine, so each attached bus
    is journaled as a separate run and earlier runs are never overwritten.
    """

    def __init__(self, data_dir: Path, db_name: str = "events.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)
        self.run: Optional[int] = None

        logger.info(f"EventJournal initialized at {self.db_path}")

    def attach(self, bus: EventBus) -> int:
        """
        Record every event published on `bus` from now on.

        Returns:
            The run number the bus's events are stored under
        """
        run = max(self.adapter.last_run(), self.run or 0) + 1
        self.run = run
        bus.subscribe(lambda event: self.record(event, run))
        logger.info(f"Journaling run {run} into {self.db_path}")
        return run

    def record(self, event: MarketEvent, run: Optional[int] = None) -> int:
        """Store one event under `run` (default: the latest attached run)."""
        run = run if run is not None else self.run
        if run is None:
            raise RuntimeError("EventJournal.record called before attach()")
        return self.adapter.save_event(
            run=run,
            seq=event.seq,
            event_id=event.event_id,
            event_type=event.event_type.name,
            sale_id=event.sale_id,
            timestamp=event.timestamp,
            payload=event.to_json(),
        )

    def last_run(self) -> int:
        return self.adapter.last_run()

    def events(
        self,
        run: Optional[int] = None,
        sale_id: Optional[int] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        """Journaled events as dictionaries (payload decoded, plus run and journal_id)."""
        rows = self.adapter.get_events(run=run, sale_id=sale_id, event_type=event_type, limit=limit)
        decoded = []
        for row in rows:
            event = json.loads(row["payload"])
            event["run"] = row["run"]
            event["journal_id"] = row["journal_id"]
            decoded.append(event)
        return decoded

    def count(self) -> int:
        return self.adapter.count_events()

    def close(self) -> None:
        self.adapter.close()
