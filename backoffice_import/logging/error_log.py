from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from backoffice_import.models.error_record import ErrorRecord

"""Row error log buffering.

- JSON Lines 固定スキーマ (追加キー禁止)
- 実行ごとに ``<log_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC) を生成 (エラーがある場合のみ)
- バッファリングして flush 時に一括追記
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - flush() 呼び出し時にファイル (なければ生成) へ一括追記
    - ファイルパスは初回アクセスで決定
    - スレッド安全性不要 (1 セッション 1 実行)
    """
    def __init__(self, log_dir: Path | str | None = None) -> None:
        self.log_dir = Path(log_dir) if log_dir is not None else LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.log_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records; returns the file written, or None when empty."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
