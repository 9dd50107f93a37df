"""Run report exporter for observability."""
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles

from samharvest.config import RUNS_FILE
from samharvest.parse.redact import redact_json

logger = logging.getLogger(__name__)


class RunReportExporter:
    """Appends one JSON line per harvesting run."""

    def __init__(self, runs_file: Path = RUNS_FILE, secret: str | None = None):
        self.runs_file = Path(runs_file)
        self.secret = secret

    async def export(self, report: dict[str, Any]) -> None:
        """Append a run report to the JSONL file."""
        line = json.dumps(redact_json(report, self.secret), default=str) + "\n"
        self.runs_file.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.runs_file, "a") as f:
            await f.write(line)
        logger.debug(f"Run report appended to {self.runs_file}")
