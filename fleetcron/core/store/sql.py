"""SQL constants for the task store, claim protocol and reclaimer."""

from __future__ import annotations

from sqlalchemy import text


# ---------- Claim (two steps, one SERIALIZABLE transaction) ----------
# Step 1 probes for the earliest due, unclaimed row and locks it. Rows locked
# by another in-flight claim are skipped rather than waited on.

CLAIM_SELECT_SQL = text("""
SELECT id
FROM fleetcron_tasks
WHERE is_running = FALSE
  AND next_run_at <= :now
ORDER BY next_run_at ASC, id ASC
LIMIT 1
FOR UPDATE SKIP LOCKED
""")

# Step 2 re-checks the unclaimed predicate at write time. Zero rows returned
# means somebody else won the row between probe and update.

CLAIM_UPDATE_SQL = text("""
UPDATE fleetcron_tasks
SET is_running = TRUE,
    server_id = :server_id,
    started_at = :now,
    updated_at = NOW()
WHERE id = :id
  AND is_running = FALSE
  AND next_run_at <= :now
RETURNING id, name, function_name, interval_seconds, server_id, started_at, next_run_at
""")


# ---------- Release ----------
# Guarded by the claim tag so a holder whose lease was already reclaimed
# cannot clear a newer claim taken by another server.

RELEASE_SQL = text("""
UPDATE fleetcron_tasks
SET is_running = FALSE,
    server_id = NULL,
    started_at = NULL,
    last_run_at = :now,
    next_run_at = :next_run_at,
    updated_at = NOW()
WHERE id = :id
  AND is_running = TRUE
  AND server_id = :server_id
  AND started_at = :started_at
""")

# Clean-shutdown cleanup. Reschedules like RELEASE_SQL: the claimed cycle
# counts as consumed even if its history row was never written.

RELEASE_OWNED_SQL = text("""
UPDATE fleetcron_tasks
SET is_running = FALSE,
    server_id = NULL,
    started_at = NULL,
    next_run_at = CAST(:now AS TIMESTAMPTZ) + make_interval(secs => interval_seconds),
    updated_at = NOW()
WHERE server_id = :server_id
  AND is_running = TRUE
RETURNING id, name, next_run_at
""")


# ---------- Stuck-task reclaim ----------

RECLAIM_STUCK_SQL = text("""
UPDATE fleetcron_tasks t
SET is_running = FALSE,
    server_id = NULL,
    started_at = NULL,
    next_run_at = CAST(:now AS TIMESTAMPTZ) + make_interval(secs => t.interval_seconds),
    updated_at = NOW()
FROM (
    SELECT id, server_id AS former_server_id, started_at AS former_started_at
    FROM fleetcron_tasks
    WHERE is_running = TRUE
      AND started_at <= :cutoff
    FOR UPDATE SKIP LOCKED
) stuck
WHERE t.id = stuck.id
RETURNING t.id, t.name, stuck.former_server_id, stuck.former_started_at, t.next_run_at
""")


# ---------- History ----------

INSERT_HISTORY_SQL = text("""
INSERT INTO fleetcron_task_history (
    task_id, task_name, server_id, started_at, completed_at,
    duration_ms, status, error, created_at
) VALUES (
    :task_id, :task_name, :server_id, :started_at, :completed_at,
    :duration_ms, :status, :error, NOW()
)
""")


# ---------- Provisioning ----------

PROVISION_TASK_SQL = text("""
INSERT INTO fleetcron_tasks (
    name, interval_seconds, function_name, is_running,
    next_run_at, created_at, updated_at
) VALUES (
    :name, :interval_seconds, :function_name, FALSE,
    :next_run_at, NOW(), NOW()
)
ON CONFLICT (name) DO NOTHING
RETURNING id
""")


# ---------- Monitoring (read-only) ----------

SELECT_TASKS_SQL = text("""
SELECT id, name, interval_seconds, function_name, is_running, server_id,
       started_at, last_run_at, next_run_at, created_at, updated_at
FROM fleetcron_tasks
ORDER BY name ASC
""")

SELECT_TASK_BY_ID_SQL = text("""
SELECT id, name, interval_seconds, function_name, is_running, server_id,
       started_at, last_run_at, next_run_at, created_at, updated_at
FROM fleetcron_tasks
WHERE id = :id
""")

SELECT_RECENT_HISTORY_FOR_TASK_SQL = text("""
SELECT id, task_id, task_name, server_id, started_at, completed_at,
       duration_ms, status, error
FROM fleetcron_task_history
WHERE task_id = :task_id
ORDER BY completed_at DESC, id DESC
LIMIT :limit
""")

# History filters are optional: a NULL parameter disables its predicate.

SELECT_HISTORY_PAGE_SQL = text("""
SELECT id, task_id, task_name, server_id, started_at, completed_at,
       duration_ms, status, error
FROM fleetcron_task_history
WHERE (CAST(:task_name AS VARCHAR) IS NULL OR task_name = :task_name)
  AND (CAST(:server_id AS VARCHAR) IS NULL OR server_id = :server_id)
  AND (CAST(:status AS VARCHAR) IS NULL OR status = :status)
ORDER BY completed_at DESC, id DESC
LIMIT :limit OFFSET :offset
""")

COUNT_HISTORY_SQL = text("""
SELECT COUNT(*)
FROM fleetcron_task_history
WHERE (CAST(:task_name AS VARCHAR) IS NULL OR task_name = :task_name)
  AND (CAST(:server_id AS VARCHAR) IS NULL OR server_id = :server_id)
  AND (CAST(:status AS VARCHAR) IS NULL OR status = :status)
""")

COUNT_TASKS_SQL = text("""
SELECT COUNT(*) AS total,
       COUNT(*) FILTER (WHERE is_running) AS running,
       COUNT(*) FILTER (WHERE NOT is_running) AS waiting
FROM fleetcron_tasks
""")

COUNT_RECENT_EXECUTIONS_SQL = text("""
SELECT COUNT(*) AS total,
       COUNT(*) FILTER (WHERE status = 'completed') AS completed,
       COUNT(*) FILTER (WHERE status = 'failed') AS failed
FROM fleetcron_task_history
WHERE completed_at >= :since
""")

TASK_PERFORMANCE_SQL = text("""
SELECT task_name, AVG(duration_ms) AS avg_duration_ms, COUNT(id) AS execution_count
FROM fleetcron_task_history
WHERE completed_at >= :since
  AND status = 'completed'
GROUP BY task_name
ORDER BY task_name ASC
""")

ACTIVE_SERVERS_SQL = text("""
SELECT DISTINCT server_id
FROM fleetcron_task_history
WHERE completed_at >= :since
ORDER BY server_id ASC
""")


# ---------- Schema and health ----------

SCHEMA_ADVISORY_LOCK_SQL = text('SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))')

HEALTH_CHECK_SQL = text("""SELECT 1""")
