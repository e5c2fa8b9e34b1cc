from pathlib import Path

from speclife.event_bus import EventBus, LifecycleEvent


class AuditLogger:
    """Appends every lifecycle event to a JSONL file, buffered in small batches."""

    def __init__(self, log_file: Path, bus: EventBus | None = None, batch_size: int = 1):
        self.log_file = Path(log_file)
        self.batch_size = batch_size
        self._buffer: list[str] = []
        if bus is not None:
            bus.subscribe(self.record)

    def record(self, event: LifecycleEvent) -> None:
        self._buffer.append(event.model_dump_json() + "\n")
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "a") as f:
            f.writelines(self._buffer)
        self._buffer.clear()

    def __del__(self):
        self.flush()
