# ledger.py
# Per-authority serial counter persisted as a single ASCII decimal integer.
#
# Single writer per store: the read-modify-write below takes no lock.

import os, tempfile
from pathlib import Path

from .errors import LedgerError


class SerialLedger:
    """High-water mark of the serials issued under one authority."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self):
        return f"SerialLedger({str(self.path)!r})"

    def bootstrap(self) -> int:
        """Create the ledger at 0. Fails if it already exists."""
        try:
            with open(self.path, "x", encoding="ascii") as f:
                f.write("0")
        except FileExistsError as e:
            raise LedgerError(f"serial ledger already exists: {self.path}") from e
        except OSError as e:
            raise LedgerError(f"cannot create serial ledger {self.path}: {e}") from e
        return 0

    def current(self) -> int:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError as e:
            raise LedgerError(f"serial ledger missing: {self.path}") from e
        except OSError as e:
            raise LedgerError(f"cannot read serial ledger {self.path}: {e}") from e
        text = raw.decode("ascii", errors="replace").strip()
        if not text or not all(c in "0123456789" for c in text):
            raise LedgerError(f"corrupt serial ledger {self.path}: {raw[:32]!r} is not a non-negative integer")
        return int(text)

    def next_serial(self) -> int:
        """Spend and return the next serial. There is no rollback if the caller aborts."""
        serial = self.current() + 1
        self._write(serial)
        return serial

    def advance_to(self, serial: int) -> None:
        """Raise the high-water mark to serial; a lower or equal value leaves the ledger alone."""
        if serial > self.current():
            self._write(serial)

    def _write(self, value: int) -> None:
        fd, tmp = tempfile.mkstemp(prefix=".serial-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(str(value))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise LedgerError(f"cannot update serial ledger {self.path}: {e}") from e
