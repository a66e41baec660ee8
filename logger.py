"""
Run Logging (Infrastructure)
============================

Concrete implementations of the `framework.Logger` event sink.

Thread-safety design:
    CSVLogger hands rows to a dedicated writer thread through a
    queue, so the generation loop never blocks on file I/O. The
    daemon thread owns the file handle and writes rows in the order
    they were queued.

Classes:
    CSVLogger: Queue-backed CSV writer with event-type filtering.
    TensorBoardLogger: Diversity and attempt scalars for TensorBoard.
    CompositeLogger: Fan-out to multiple loggers.
"""

import csv
import queue
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from torch.utils.tensorboard import SummaryWriter

from framework import Logger

ATTEMPT_FIELDS = [
    'timestamp', 'event_type', 'step', 'seed', 'attempt', 'diversity',
    'accepted', 'node_count', 'depth', 'render_time',
]

IMAGE_FIELDS = [
    'timestamp', 'event_type', 'step', 'seed', 'size', 'attempts',
    'diversity', 'low_diversity', 'expression',
]

class CSVLogger(Logger):
    """
    CSV logger with event-type filtering.

    Rows are queued by the caller and written by a daemon thread that
    keeps the file open for the logger's lifetime. Each CSVLogger owns
    one file and one writer thread.
    """
    def __init__(self, log_file_path: str, fieldnames: list, allowed_event_types: Optional[List[str]] = None):
        self.log_file_path = log_file_path
        self.fieldnames = fieldnames
        self.allowed_event_types = allowed_event_types

        self._queue = queue.Queue()
        self._stop_event = threading.Event()
        self._file = open(self.log_file_path, 'w', newline='')
        self._writer = csv.DictWriter(self._file, fieldnames=self.fieldnames)
        self._writer.writeheader()
        self._file.flush()

        self._thread = threading.Thread(target=self._process_queue, daemon=True)
        self._thread.start()

    def _process_queue(self):
        """Writer thread: drains the queue until closed and empty."""
        while not self._stop_event.is_set() or not self._queue.empty():
            try:
                row = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._writer.writerow(row)
                self._file.flush()
            finally:
                self._queue.task_done()

    def log_event(self, event_type: str, data: Dict[str, Any]):
        """
        Queues one row, keeping only this file's columns and event types.
        """
        if self.allowed_event_types and event_type not in self.allowed_event_types:
            return

        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'event_type': event_type,
        }
        log_entry.update(data)

        row = {field: log_entry.get(field) for field in self.fieldnames}
        if all(row[field] is None for field in self.fieldnames if field not in ('timestamp', 'event_type')):
            return

        self._queue.put(row)

    def close(self):
        """
        Drains pending rows, stops the writer thread and closes the file.
        """
        self._queue.join()
        self._stop_event.set()
        self._thread.join()
        self._file.close()

class TensorBoardLogger(Logger):
    """
    Writes per-attempt and per-image diversity scalars to TensorBoard.
    """
    def __init__(self, log_dir: str):
        self.writer = SummaryWriter(log_dir)
        self._attempt_step = 0

    def log_event(self, event_type: str, data: Dict[str, Any]):
        if event_type == 'attempt':
            # Attempts are plotted on their own running axis
            self.writer.add_scalar('Diversity/Attempt', data['diversity'], self._attempt_step)
            self.writer.add_scalar('Render/Seconds', data['render_time'], self._attempt_step)
            self.writer.add_scalar('Tree/Nodes', data['node_count'], self._attempt_step)
            self._attempt_step += 1

        elif event_type == 'image':
            step = data.get('step')
            if step is None:
                return
            self.writer.add_scalar('Diversity/Final', data['diversity'], step)
            self.writer.add_scalar('Attempts/Count', data['attempts'], step)
            self.writer.add_scalar('Diversity/LowFlag', float(data['low_diversity']), step)

    def close(self):
        self.writer.close()

class CompositeLogger(Logger):
    """
    A logger that delegates to a list of other loggers.
    """
    def __init__(self, loggers: list[Logger]):
        self.loggers = loggers

    def log_event(self, event_type: str, data: Dict[str, Any]):
        for logger in self.loggers:
            logger.log_event(event_type, data)

    def close(self):
        for logger in self.loggers:
            logger.close()
