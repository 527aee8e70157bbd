"""
slide_reports: pre-computed backup and snapshot statistics.

Each report is built from per-agent daily figures:

- backups started that day, split by outcome, with a success rate and a
  tally of failure messages;
- snapshots currently held for the agent, split by storage location, and
  deleted snapshots split by deletion reason.

Device and client scoped reports fan out over the scope's agents through a
bounded thread pool. Agent, device and client lookups are cached for the
duration of one tool call.
"""

from __future__ import annotations

import calendar
import concurrent.futures
import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from slide_mcp.api.client import SlideClient
from slide_mcp.api.errors import SlideError, ToolError
from slide_mcp.tools.base import ToolContext, ToolSpec, operation_schema, optional_bool, optional_str, prop, to_json
from slide_mcp.tools.meta import parse_timestamp, rfc3339

logger = logging.getLogger("Slide.tools.reports")

PAGE_SIZE = 50
AGENT_PAGE_SIZE = 100
SCOPED_WORKERS = 10
FLEET_WORKERS = 20

DAY_LABELS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass
class BackupStats:
    total: int = 0
    successful: int = 0
    failed: int = 0
    in_progress: int = 0
    success_rate: float = 0.0
    failures_by_error: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if not self.failures_by_error:
            payload.pop("failures_by_error")
        return payload


@dataclass
class SnapshotStats:
    total: int = 0
    active: int = 0
    deleted: int = 0
    deleted_by_retention: int = 0
    deleted_manually: int = 0
    deleted_other: int = 0
    local_storage: int = 0
    cloud_storage: int = 0


@dataclass
class DailyReport:
    date: str
    agent_id: str
    backups: BackupStats = field(default_factory=BackupStats)
    snapshots: SnapshotStats = field(default_factory=SnapshotStats)
    agent_name: str = ""
    device_id: str = ""
    device_name: str = ""
    client_id: str = ""
    client_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "date": self.date,
            "backups": self.backups.to_dict(),
            "snapshots": asdict(self.snapshots),
        }
        for key in ("agent_id", "agent_name", "device_id", "device_name", "client_id", "client_name"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


def parse_report_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ToolError(f"invalid date format. Use YYYY-MM-DD: {exc}") from exc


def _day_bounds(day: date) -> tuple:
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return [row for row in payload["data"] if isinstance(row, dict)]
    return []


def _pagination(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, dict) and isinstance(payload.get("pagination"), dict):
        return payload["pagination"]
    return {}


def _next_offset(payload: Any, offset: int) -> Optional[int]:
    value = _pagination(payload).get("next_offset")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = int(value)
    return value if value > offset else None


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


class ReportBuilder:
    """Computes per-agent statistics for one tool call."""

    def __init__(self, client: SlideClient, *, verbose: bool = False):
        self.client = client
        self.progress: Callable[..., None] = logger.info if verbose else logger.debug
        self._lock = threading.Lock()
        self._agents: Dict[str, Optional[Dict[str, Any]]] = {}
        self._devices: Dict[str, Optional[Dict[str, Any]]] = {}
        self._clients: Dict[str, str] = {}
        self._snapshot_stats: Dict[str, SnapshotStats] = {}

    # -- cached lookups -------------------------------------------------

    def _cached(self, cache: Dict[str, Any], key: str, loader: Callable[[], Any]) -> Any:
        with self._lock:
            if key in cache:
                return cache[key]
        value = loader()
        with self._lock:
            cache[key] = value
        return value

    def _lookup(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            payload = self.client.get(path)
        except SlideError as exc:
            logger.debug("Lookup %s failed: %s", path, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def agent(self, agent_id: str) -> Optional[Dict[str, Any]]:
        return self._cached(self._agents, agent_id, lambda: self._lookup(f"/v1/agent/{agent_id}"))

    def device(self, device_id: str) -> Optional[Dict[str, Any]]:
        return self._cached(self._devices, device_id, lambda: self._lookup(f"/v1/device/{device_id}"))

    def client_name(self, client_id: str) -> str:
        def load() -> str:
            record = self._lookup(f"/v1/client/{client_id}")
            return str(record.get("name") or "") if record else ""

        return self._cached(self._clients, client_id, load)

    # -- statistics -----------------------------------------------------

    def _list_backups(self, params: Dict[str, Any], start: datetime, end: datetime) -> Any:
        windowed = dict(params, start_date=rfc3339(start), end_date=rfc3339(end))
        try:
            return self.client.get("/v1/backup", windowed)
        except SlideError as exc:
            logger.debug("Windowed backup listing failed, retrying without window: %s", exc)
        try:
            return self.client.get("/v1/backup", params)
        except SlideError as exc:
            raise SlideError(f"failed to list backups: {exc}") from exc

    def backup_stats(self, agent_id: str, day: date) -> BackupStats:
        stats = BackupStats()
        start, end = _day_bounds(day)
        offset = 0
        while True:
            params = {"agent_id": agent_id, "limit": PAGE_SIZE, "offset": offset, "sort_by": "start_time"}
            payload = self._list_backups(params, start, end)
            rows = _rows(payload)
            found = False
            for backup in rows:
                started = parse_timestamp(backup.get("started_at"))
                if started is None or not start <= started < end:
                    continue
                found = True
                stats.total += 1
                status = backup.get("status")
                if status == "success":
                    stats.successful += 1
                elif status == "failed":
                    stats.failed += 1
                    message = backup.get("error_message")
                    if message:
                        stats.failures_by_error[message] = stats.failures_by_error.get(message, 0) + 1
                elif status in ("running", "pending"):
                    stats.in_progress += 1
            if not found and stats.total:
                break
            next_offset = _next_offset(payload, offset)
            if next_offset is None or not rows:
                break
            offset = next_offset
        stats.success_rate = _rate(stats.successful, stats.total)
        self.progress("Found %d backups for agent %s on %s", stats.total, agent_id, day.isoformat())
        return stats

    def snapshot_stats(self, agent_id: str, device_id: str = "") -> SnapshotStats:
        """Current snapshot counts for an agent; fetched once per agent and device."""
        stats = self._cached(
            self._snapshot_stats,
            f"{agent_id}/{device_id}",
            lambda: self._fetch_snapshot_stats(agent_id, device_id),
        )
        return replace(stats)

    def _fetch_snapshot_stats(self, agent_id: str, device_id: str) -> SnapshotStats:
        stats = SnapshotStats()

        offset = 0
        counted = 0
        while True:
            try:
                payload = self.client.get(
                    "/v1/snapshot", {"agent_id": agent_id, "limit": PAGE_SIZE, "offset": offset}
                )
            except SlideError as exc:
                raise SlideError(f"failed to list active snapshots: {exc}") from exc
            rows = _rows(payload)
            for snapshot in rows:
                counted += 1
                local = cloud = False
                for location in snapshot.get("locations") or []:
                    if not isinstance(location, dict):
                        continue
                    if location.get("type") == "cloud":
                        cloud = True
                    elif location.get("type") == "local" or (device_id and location.get("device_id") == device_id):
                        local = True
                    else:
                        cloud = True
                stats.local_storage += int(local)
                stats.cloud_storage += int(cloud)
            next_offset = _next_offset(payload, offset)
            if next_offset is None or not rows:
                break
            offset = next_offset
        total = _pagination(payload).get("total")
        stats.active = max(counted, total if isinstance(total, int) and not isinstance(total, bool) else 0)

        offset = 0
        counted = 0
        while True:
            try:
                payload = self.client.get(
                    "/v1/snapshot",
                    {"agent_id": agent_id, "snapshot_location": "exists_deleted", "limit": PAGE_SIZE, "offset": offset},
                )
            except SlideError as exc:
                self.progress("Could not fetch deleted snapshots for agent %s: %s", agent_id, exc)
                break
            rows = _rows(payload)
            for snapshot in rows:
                counted += 1
                deletions = [entry for entry in snapshot.get("deletions") or [] if isinstance(entry, dict)]
                if not deletions:
                    continue
                reason = deletions[0].get("type")
                if reason == "retention":
                    stats.deleted_by_retention += 1
                elif reason == "manual":
                    stats.deleted_manually += 1
                else:
                    stats.deleted_other += 1
            next_offset = _next_offset(payload, offset)
            if next_offset is None or not rows:
                break
            offset = next_offset
        stats.deleted = counted

        stats.total = stats.active + stats.deleted
        return stats

    # -- reports --------------------------------------------------------

    def agent_report(self, agent_id: str, day: date) -> DailyReport:
        report = DailyReport(date=day.isoformat(), agent_id=agent_id)
        agent = self.agent(agent_id)
        if agent is not None:
            report.agent_name = agent.get("display_name") or agent.get("hostname") or ""
            report.device_id = agent.get("device_id") or ""
            report.client_id = agent.get("client_id") or ""
            if report.client_id:
                report.client_name = self.client_name(report.client_id)
            if report.device_id:
                device = self.device(report.device_id)
                if device is not None:
                    report.device_name = device.get("display_name") or device.get("hostname") or ""

        try:
            report.backups = self.backup_stats(agent_id, day)
        except SlideError as exc:
            raise SlideError(f"failed to calculate backup stats: {exc}") from exc
        try:
            report.snapshots = self.snapshot_stats(agent_id, report.device_id)
        except SlideError as exc:
            raise SlideError(f"failed to calculate snapshot stats: {exc}") from exc
        return report

    def _concurrent_reports(self, agents: List[Dict[str, Any]], day: date, workers: int) -> List[DailyReport]:
        agent_ids = [agent.get("agent_id") for agent in agents if agent.get("agent_id")]
        results: Dict[int, DailyReport] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="slide-report") as pool:
            future_map = {pool.submit(self.agent_report, agent_id, day): idx for idx, agent_id in enumerate(agent_ids)}
            for future in concurrent.futures.as_completed(future_map):
                idx = future_map[future]
                try:
                    results[idx] = future.result()
                except SlideError as exc:
                    self.progress("Skipping agent %s: %s", agent_ids[idx], exc)
        self.progress("Completed %d of %d agents for %s", len(results), len(agent_ids), day.isoformat())
        return [results[idx] for idx in sorted(results)]

    def _list_agents(self, params: Dict[str, Any]) -> Any:
        try:
            return self.client.get("/v1/agent", params)
        except SlideError as exc:
            raise SlideError(f"failed to list agents: {exc}") from exc

    def all_agents(self) -> List[Dict[str, Any]]:
        agents: List[Dict[str, Any]] = []
        offset = 0
        while True:
            payload = self._list_agents({"limit": AGENT_PAGE_SIZE, "offset": offset})
            rows = _rows(payload)
            agents.extend(rows)
            next_offset = _next_offset(payload, offset)
            if next_offset is None or not rows:
                break
            offset = next_offset
        self.progress("Collected %d agents", len(agents))
        return agents

    def scoped_reports(self, args: Dict[str, Any], day: date) -> List[DailyReport]:
        """Reports for the narrowest scope named in ``args`` (agent, device, client, everything)."""
        agent_id = optional_str(args, "agent_id")
        if agent_id:
            try:
                return [self.agent_report(agent_id, day)]
            except SlideError as exc:
                raise SlideError(f"failed to generate agent report: {exc}") from exc

        device_id = optional_str(args, "device_id")
        if device_id:
            try:
                agents = _rows(self._list_agents({"device_id": device_id, "limit": AGENT_PAGE_SIZE}))
            except SlideError as exc:
                raise SlideError(f"failed to generate device report: {exc}") from exc
            return self._concurrent_reports(agents, day, SCOPED_WORKERS)

        client_id = optional_str(args, "client_id")
        if client_id:
            try:
                agents = _rows(self._list_agents({"client_id": client_id, "limit": AGENT_PAGE_SIZE}))
            except SlideError as exc:
                raise SlideError(f"failed to generate client report: {exc}") from exc
            return self._concurrent_reports(agents, day, SCOPED_WORKERS)

        try:
            agents = self.all_agents()
        except SlideError as exc:
            raise SlideError(f"failed to generate all agents report: {exc}") from exc
        return self._concurrent_reports(agents, day, FLEET_WORKERS)

    def tolerant_reports(self, args: Dict[str, Any], day: date, label: str) -> Optional[List[DailyReport]]:
        try:
            reports = self.scoped_reports(args, day)
        except SlideError as exc:
            self.progress("[%s] Error processing %s: %s", label, day.isoformat(), exc)
            return None
        self.progress("[%s] Found %d agent reports for %s", label, len(reports), day.isoformat())
        return reports


# ---------------------------------------------------------------------------
# Markdown rendering
# ---------------------------------------------------------------------------

def _long_date(day: date) -> str:
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def _totals(reports: List[DailyReport]) -> Dict[str, int]:
    return {
        "backups": sum(r.backups.total for r in reports),
        "successful": sum(r.backups.successful for r in reports),
        "failed": sum(r.backups.failed for r in reports),
        "snapshots": sum(r.snapshots.total for r in reports),
        "deleted": sum(r.snapshots.deleted for r in reports),
    }


def render_daily_markdown(reports: List[DailyReport], day: date) -> str:
    lines = [f"# Daily Backup & Snapshot Report - {day.isoformat()}", ""]
    if not reports:
        lines.append("No data available for the specified criteria.")
        return "\n".join(lines) + "\n"

    totals = _totals(reports)
    lines += ["## Summary", "", f"- **Total Agents Reporting**: {len(reports)}", f"- **Total Backups**: {totals['backups']}"]
    if totals["backups"]:
        lines.append(f"- **Overall Success Rate**: {_rate(totals['successful'], totals['backups']):.1f}%")
    lines += [f"- **Total Snapshots**: {totals['snapshots']}", f"- **Snapshots Deleted**: {totals['deleted']}", ""]

    lines += ["## Agent Details", ""]
    for report in reports:
        lines.append(f"### {report.agent_name or report.agent_id}")
        if report.client_name:
            lines.append(f"**Client**: {report.client_name}")
        if report.device_name:
            lines.append(f"**Device**: {report.device_name}")
        lines += ["", "**Backups:**"]
        backups = report.backups
        lines += [f"- Total: {backups.total}", f"- Successful: {backups.successful}", f"- Failed: {backups.failed}"]
        if backups.in_progress:
            lines.append(f"- In Progress: {backups.in_progress}")
        lines.append(f"- Success Rate: {backups.success_rate:.1f}%")
        if backups.failures_by_error:
            lines += ["", "**Failure Reasons:**"]
            lines += [f"- {message}: {count}" for message, count in sorted(backups.failures_by_error.items())]
        snapshots = report.snapshots
        lines += [
            "",
            "**Snapshots:**",
            f"- Total: {snapshots.total}",
            f"- Active: {snapshots.active}",
            f"- Deleted: {snapshots.deleted}",
        ]
        if snapshots.deleted:
            lines += [
                f"  - By Retention Policy: {snapshots.deleted_by_retention}",
                f"  - Manually Deleted: {snapshots.deleted_manually}",
                f"  - Other Reasons: {snapshots.deleted_other}",
            ]
        lines += [f"- Local Storage: {snapshots.local_storage}", f"- Cloud Storage: {snapshots.cloud_storage}", ""]
        lines += ["---", ""]
    return "\n".join(lines) + "\n"


def _period_summary(days: List[List[DailyReport]], heading: str, rate_label: str) -> List[str]:
    flat = [report for reports in days for report in reports]
    totals = _totals(flat)
    lines = [
        f"## {heading}",
        "",
        f"- **Total Unique Agents**: {len({r.agent_id for r in flat})}",
        f"- **Total Backups**: {totals['backups']}",
    ]
    if totals["backups"]:
        lines.append(f"- **{rate_label}**: {_rate(totals['successful'], totals['backups']):.1f}%")
    lines += [f"- **Total Snapshots**: {totals['snapshots']}", f"- **Snapshots Deleted**: {totals['deleted']}", ""]
    return lines


def render_weekly_markdown(week: List[List[DailyReport]], start: date) -> str:
    lines = [
        "# Weekly Backup & Snapshot Report",
        f"## Week of {_long_date(start)} to {_long_date(start + timedelta(days=6))}",
        "",
    ]
    lines += _period_summary(week, "Weekly Summary", "Weekly Success Rate")
    lines += ["## Daily Breakdown", ""]
    for offset, reports in enumerate(week):
        current = start + timedelta(days=offset)
        lines += [f"### {DAY_LABELS[offset]} - {current.strftime('%b')} {current.day}", ""]
        if not reports:
            lines += ["No data available for this day.", ""]
            continue
        totals = _totals(reports)
        outcome = (
            f"{_rate(totals['successful'], totals['backups']):.1f}% success" if totals["backups"] else "no backups"
        )
        lines += [
            f"- Agents: {len(reports)}",
            f"- Backups: {totals['backups']} ({outcome})",
            f"- Snapshots: {totals['snapshots']}",
            "",
        ]
    return "\n".join(lines) + "\n"


def _calendar_cell(day: int, reports: List[DailyReport]) -> str:
    totals = _totals(reports)
    if not totals["backups"]:
        return f" {day:2d}  |"
    rate = _rate(totals["successful"], totals["backups"])
    if rate >= 90:
        indicator = "✓"
    elif rate >= 50:
        indicator = "~"
    else:
        indicator = "✗"
    return f" {day:2d}{indicator} |"


def render_monthly_markdown(month: Dict[int, List[DailyReport]], first: date) -> str:
    last_day = calendar.monthrange(first.year, first.month)[1]
    lines = [f"# Monthly Backup & Snapshot Report - {first.strftime('%B %Y')}", ""]
    lines += _period_summary(list(month.values()), "Monthly Summary", "Monthly Success Rate")

    lines += ["## Calendar View", "", "| Sun | Mon | Tue | Wed | Thu | Fri | Sat |", "|-----|-----|-----|-----|-----|-----|-----|"]
    leading = (first.weekday() + 1) % 7
    cells = ["     |"] * leading
    cells += [_calendar_cell(day, month.get(day) or []) for day in range(1, last_day + 1)]
    cells += ["     |"] * (-len(cells) % 7)
    for row in range(0, len(cells), 7):
        lines.append("|" + "".join(cells[row:row + 7]))
    lines += ["", "**Legend:** ✓ = ≥90% success, ~ = 50-89% success, ✗ = <50% success", ""]

    lines += ["## Daily Details", ""]
    for day in range(1, last_day + 1):
        reports = month.get(day) or []
        if not reports:
            continue
        current = first.replace(day=day)
        totals = _totals(reports)
        lines += [
            f"### {current.strftime('%B')} {day} ({current.strftime('%A')})",
            f"- **Agents**: {len(reports)}",
            f"- **Backups**: {totals['backups']} total ({totals['successful']} successful, {totals['failed']} failed)",
        ]
        if totals["backups"]:
            lines.append(f"- **Success Rate**: {_rate(totals['successful'], totals['backups']):.1f}%")
        lines += [f"- **Snapshots**: {totals['snapshots']}", ""]
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(timezone.utc).date()


def _format(args: Dict[str, Any]) -> str:
    fmt = optional_str(args, "format") or "json"
    if fmt not in ("json", "markdown"):
        raise ToolError(f"unsupported format: {fmt}. Supported formats: json, markdown")
    return fmt


def _builder(ctx: ToolContext, args: Dict[str, Any]) -> ReportBuilder:
    return ReportBuilder(ctx.client, verbose=bool(optional_bool(args, "verbose")))


def daily_backup_snapshot(ctx: ToolContext, args: Dict[str, Any]) -> str:
    day = parse_report_date(optional_str(args, "date")) or _today()
    fmt = _format(args)
    reports = _builder(ctx, args).scoped_reports(args, day)
    if fmt == "markdown":
        return render_daily_markdown(reports, day)
    return to_json(
        {
            "date": day.isoformat(),
            "reports": [report.to_dict() for report in reports],
            "_metadata": {
                "description": "Daily backup and snapshot statistics",
                "guidance": "Use this data to identify backup failures, storage trends, and deletion patterns",
            },
        }
    )


def weekly_backup_snapshot(ctx: ToolContext, args: Dict[str, Any]) -> str:
    anchor = parse_report_date(optional_str(args, "date")) or _today()
    fmt = _format(args)
    start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
    builder = _builder(ctx, args)
    week: List[List[DailyReport]] = []
    for offset in range(7):
        current = start + timedelta(days=offset)
        builder.progress("[Weekly Report] Processing %s (%s)", DAY_LABELS[offset], current.isoformat())
        week.append(builder.tolerant_reports(args, current, "Weekly Report") or [])
    if fmt == "markdown":
        return render_weekly_markdown(week, start)
    return to_json(
        {
            "week_start": start.isoformat(),
            "week_end": (start + timedelta(days=6)).isoformat(),
            "daily_reports": [[report.to_dict() for report in reports] for reports in week],
            "_metadata": {
                "description": "Weekly backup and snapshot statistics (Sunday to Saturday)",
                "guidance": "Use this data to identify weekly patterns and trends",
            },
        }
    )


def monthly_backup_snapshot(ctx: ToolContext, args: Dict[str, Any]) -> str:
    anchor = parse_report_date(optional_str(args, "date")) or _today()
    fmt = _format(args)
    first = anchor.replace(day=1)
    last_day = calendar.monthrange(first.year, first.month)[1]
    builder = _builder(ctx, args)
    month: Dict[int, List[DailyReport]] = {}
    for day in range(1, last_day + 1):
        current = first.replace(day=day)
        builder.progress("[Monthly Report] Processing day %d/%d (%s)", day, last_day, current.isoformat())
        reports = builder.tolerant_reports(args, current, "Monthly Report")
        if reports is not None:
            month[day] = reports
    if fmt == "markdown":
        return render_monthly_markdown(month, first)
    return to_json(
        {
            "month": first.strftime("%Y-%m"),
            "month_name": first.strftime("%B %Y"),
            "daily_reports": {str(day): [r.to_dict() for r in reports] for day, reports in month.items()},
            "_metadata": {
                "description": "Monthly backup and snapshot statistics",
                "guidance": "Use this data to identify monthly patterns and long-term trends",
            },
        }
    )


OPERATIONS = {
    "daily_backup_snapshot": daily_backup_snapshot,
    "weekly_backup_snapshot": weekly_backup_snapshot,
    "monthly_backup_snapshot": monthly_backup_snapshot,
}

TOOL = ToolSpec(
    name="slide_reports",
    description=(
        "Generate statistical reports about backups, snapshots, and system health. Provides pre-calculated "
        "metrics to help LLMs analyze data without complex calculations."
    ),
    input_schema=operation_schema(
        list(OPERATIONS),
        {
            "date": prop(
                "string",
                "Date for the report in YYYY-MM-DD format (defaults to today/current week/current month)",
            ),
            "agent_id": prop("string", "Filter report by specific agent ID"),
            "device_id": prop("string", "Filter report by device ID (includes all agents on device)"),
            "client_id": prop("string", "Filter report by client ID (includes all agents for client)"),
            "format": prop("string", "Output format for the report", enum=["json", "markdown"]),
            "verbose": prop(
                "boolean", "Enable verbose progress logging to stderr (useful for long operations)"
            ),
        },
        {},
    ),
    operations=OPERATIONS,
)
