"""
Subjects and bodies for stage notifications.

Every builder returns a (subject, body) tuple. Bodies always carry the
execution id and record counts so an operator can act without the logs.
"""

from typing import Optional, Tuple
from datetime import datetime
from schemas.reports import (
    ExtractionOutcome,
    FailurePolicy,
    StagingLoadReport,
    TransformReport,
    WarehouseLoadReport,
)

Report = Tuple[str, str]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _stamp(when: Optional[datetime] = None) -> str:
    return (when or datetime.now()).strftime(TIMESTAMP_FORMAT)


def extraction_failure_message(outcome: ExtractionOutcome) -> str:
    message = (
        f"Extract FAILED: {outcome.failure_count}/{outcome.total} locations failed."
    )
    if outcome.policy == FailurePolicy.STRICT:
        message += " STRICT MODE requires all locations to succeed."
    else:
        message += " No location could be fetched."
    return message


def extract_success(outcome: ExtractionOutcome) -> Report:
    lines = [
        f"Execution ID: {outcome.execution_id}",
        f"Policy: {outcome.policy.value}",
        f"Locations succeeded: {outcome.success_count}/{outcome.total}",
        f"Locations failed: {outcome.failure_count}",
        f"Output file: {outcome.file_path}",
    ]
    if outcome.failures:
        lines.append("")
        lines.append("Failed locations:")
        lines.extend(f"  - {f.location}: {f.error_type}: {f.reason}" for f in outcome.failures)
    lines.append(f"Completed at: {_stamp()}")

    subject = "[Weather ETL] Extract succeeded"
    if outcome.failures:
        subject += f" with {outcome.failure_count} failed location(s)"
    return subject, "\n".join(lines)


def extract_failure(outcome: ExtractionOutcome) -> Report:
    lines = [
        extraction_failure_message(outcome),
        "",
        f"Execution ID: {outcome.execution_id}",
        f"Policy: {outcome.policy.value}",
        f"Locations succeeded: {outcome.success_count}/{outcome.total}",
        "",
        "Failed locations:",
    ]
    lines.extend(f"  - {f.location}: {f.error_type}: {f.reason}" for f in outcome.failures)
    lines.append("")
    lines.append("No output file was kept.")
    lines.append(f"Failed at: {_stamp()}")
    return "[Weather ETL] Extract FAILED", "\n".join(lines)


def already_done(stage: str, process_name: str) -> Report:
    body = (
        f"Process {process_name} already succeeded today; "
        f"{stage} was skipped.\nChecked at: {_stamp()}"
    )
    return f"[Weather ETL] {stage} already done today", body


def staging_load_success(execution_id: str, report: StagingLoadReport) -> Report:
    lines = [
        f"Execution ID: {execution_id}",
        f"Input file: {report.file_path}",
        f"Source batches: {', '.join(report.batch_ids) or '-'}",
        f"Rows read: {report.rows_read}",
        f"Rows skipped: {report.rows_skipped}",
    ]
    lines.extend(f"  {table}: {count}" for table, count in report.records_inserted.items())
    lines.append(f"Completed at: {_stamp()}")
    return "[Weather ETL] Staging load succeeded", "\n".join(lines)


def transform_success(execution_id: str, report: TransformReport) -> Report:
    lines = [
        f"Execution ID: {execution_id}",
        f"Records written: {report.total_written}",
        f"Records rejected: {report.total_rejected}",
    ]
    for table, count in report.records_written.items():
        rejected = report.records_rejected.get(table, 0)
        dropped = report.duplicates_dropped.get(table, 0)
        lines.append(f"  {table}: {count} written, {rejected} rejected, {dropped} duplicates dropped")
    lines.append(f"Completed at: {_stamp()}")
    return "[Weather ETL] Transform succeeded", "\n".join(lines)


def warehouse_load_success(execution_id: str, report: WarehouseLoadReport, attempt: int) -> Report:
    lines = [
        f"Execution ID: {execution_id}",
        f"Attempt: {attempt}",
        f"Partition: {report.partition_key}",
        f"Rows affected: {report.total_affected}",
    ]
    lines.extend(f"  {table}: {count}" for table, count in report.rows_affected.items())
    if report.total_skipped:
        lines.append(f"Rows skipped: {report.total_skipped}")
        lines.extend(f"  {table}: {count}" for table, count in report.rows_skipped.items())
    lines.append(f"Completed at: {_stamp()}")
    return "[Weather ETL] Warehouse load succeeded", "\n".join(lines)


def attempt_failure(
    stage: str,
    attempt: int,
    max_attempts: int,
    error: BaseException,
    execution_id: Optional[str] = None,
    next_delay: Optional[float] = None
) -> Report:
    message = getattr(error, "message", None) or str(error)
    lines = [
        f"Stage: {stage}",
        f"Attempt: {attempt}/{max_attempts}",
        f"Execution ID: {execution_id or '-'}",
        f"Error: {type(error).__name__}: {message}",
        f"Failed at: {_stamp()}",
    ]
    if next_delay is not None:
        lines.append(f"Next attempt in {next_delay:g} seconds")
    return f"[Weather ETL] {stage} attempt {attempt}/{max_attempts} failed", "\n".join(lines)


def retries_exhausted(stage: str, max_attempts: int, error: BaseException) -> Report:
    message = getattr(error, "message", None) or str(error)
    body = "\n".join([
        f"Stage {stage}: all {max_attempts} attempts exhausted.",
        f"Last error: {type(error).__name__}: {message}",
        "Manual intervention required.",
        f"Failed at: {_stamp()}",
    ])
    return f"[Weather ETL] {stage} FAILED: all {max_attempts} attempts exhausted", body
